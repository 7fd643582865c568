from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any, Dict, List, Type, TypeVar
from ..errors import InvalidRequestError
from ..event_models import StoredEvent

M = TypeVar("M", bound=BaseModel)


def parse_body(model: Type[M], data: Any) -> M:
    """Validate a raw JSON body, mapping failures to a 400."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors() if err["type"] == "missing"]
        raise InvalidRequestError(
            "Missing required fields" if missing else "Invalid request",
            details=missing or [err["msg"] for err in e.errors()],
        )


class SuccessResponse(BaseModel):
    success: bool = True


class WebhookRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    webhookUrl: str | None = None

    def payload(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class GA4EventRequest(BaseModel):
    event_name: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)


class GA4EventResponse(SuccessResponse):
    event: str
    debugResponse: str | None = None


class GA4BatchRequest(BaseModel):
    client_id: str = Field(min_length=1)
    events: List[Dict[str, Any]] = Field(min_length=1)
    user_properties: Dict[str, Any] | None = None
    non_personalized_ads: bool = False


class GA4RelayRequest(BaseModel):
    eventName: str = Field(min_length=1)
    clientId: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    userId: str | None = None
    userProperties: Dict[str, Any] | None = None


class GA4MeasurementRequest(BaseModel):
    name: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    client_id: str | None = None
    user_id: str | None = None
    timestamp_micros: int | None = None
    non_personalized_ads: bool | None = None


class GA4MeasurementResponse(SuccessResponse):
    message: str
    clientId: str


class MetaConversionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_name: str = Field(min_length=1)
    event_time: int
    user_data: Dict[str, Any]
    event_id: str | None = None


class MetaConversionResponse(SuccessResponse):
    data: Any = None
    event_name: str
    event_id: str


class LeadResponse(SuccessResponse):
    message: str = "Request accepted for processing"
    leadSaved: bool
    leadId: Any = None
    previousLeadsRemoved: bool = False
    webhook: str | None = None
    leadScore: Any = None
    qualified: bool | None = None


class DedupEventsResponse(BaseModel):
    total: int
    events: Dict[str, List[StoredEvent]]


class DedupClearResponse(SuccessResponse):
    removed: int

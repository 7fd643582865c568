from pydantic import BaseModel, Field
from typing import Any, Dict
import time

def now_ms() -> int:
    return int(time.time() * 1000)

class StoredEvent(BaseModel):
    """A sent-event record; the (event_name, identifier) pair is the dedup key."""
    event_name: str = Field(..., description="Tracked event name, e.g. Lead or page_view")
    identifier: str = Field(default="default", description="Caller-chosen fingerprint")
    timestamp: int = Field(default_factory=now_ms, description="Send time in epoch ms")
    metadata: Dict[str, Any] | None = None

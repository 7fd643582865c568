from fastapi import APIRouter, Depends
from .schemas import DedupClearResponse, DedupEventsResponse
from ..errors import RelayError
from ..services.dedup import DedupStore, Namespace, get_dedup_store

router = APIRouter(prefix="/api/dedup", tags=["dedup"])


@router.get("/events", response_model=DedupEventsResponse)
async def list_sent_events(
    namespace: Namespace | None = None,
    store: DedupStore = Depends(get_dedup_store),
):
    """Non-expired sent-event records, per namespace."""
    events = await store.get_all(namespace)
    return DedupEventsResponse(total=sum(len(v) for v in events.values()), events=events)


@router.delete("/events", response_model=DedupClearResponse)
async def clear_sent_events(
    event_name: str | None = None,
    identifier: str | None = None,
    namespace: Namespace | None = None,
    store: DedupStore = Depends(get_dedup_store),
):
    outcome = await store.clear(event_name=event_name, identifier=identifier, namespace=namespace)
    if not outcome:
        raise RelayError("Could not clear sent events", details=outcome.error)
    return DedupClearResponse(removed=outcome.value)

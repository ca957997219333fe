"""
Sync API - change notifications pushed by the backend; each one triggers a refetch of affected orders.
"""
from fastapi import APIRouter, Depends, status

from pos_terminal.schemas.sync import SyncEvent
from pos_terminal.schemas.terminal import SyncAck
from pos_terminal.services.registry import SessionRegistry, get_registry

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/events", response_model=SyncAck, status_code=status.HTTP_202_ACCEPTED, summary="Publish a change event")
async def publish_event(event: SyncEvent, registry: SessionRegistry = Depends(get_registry)) -> SyncAck:
    delivered = await registry.feed.publish(event)
    return SyncAck(delivered=delivered)

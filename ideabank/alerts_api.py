"""REST API for operator alerts (failed publishes)."""

from fastapi import APIRouter

from ideabank.dependencies import CoordinatorDep
from ideabank.models import AlertResponse

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get("")
async def list_alerts(coordinator: CoordinatorDep, unacknowledged: bool = False, limit: int = 50):
    alerts = await coordinator.list_alerts(unacknowledged_only=unacknowledged, limit=limit)
    return {
        "alerts": [AlertResponse.model_validate(a).model_dump(mode="json") for a in alerts],
        "unread": sum(1 for a in alerts if a.acknowledged_at is None),
    }


@router.post("/ack-all")
async def acknowledge_all(coordinator: CoordinatorDep):
    return {"acknowledged": await coordinator.acknowledge_all_alerts()}


@router.post("/{alert_id}/ack", response_model=AlertResponse)
async def acknowledge(alert_id: int, coordinator: CoordinatorDep):
    return await coordinator.acknowledge_alert(alert_id)

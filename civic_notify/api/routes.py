"""HTTP routes: notification intake, trigger invocation and health."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status

from civic_notify.container import ServiceContainer
from civic_notify.logging import get_logger
from civic_notify.persistence import (
    NotificationQueueRepository,
    RecordNotFoundError,
    get_session,
)

from .schemas import NotificationView, QueueNotificationRequest, QueueNotificationResponse

logger = get_logger(__name__, component="api")

router = APIRouter()


def _container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.post(
    "/notifications",
    status_code=status.HTTP_201_CREATED,
    response_model=QueueNotificationResponse,
    summary="Queue a notification",
)
def queue_notification(body: QueueNotificationRequest, request: Request) -> QueueNotificationResponse:
    """Queue a notification for a ticket event and attempt delivery."""
    service = _container(request).notification_service
    try:
        queue_id = service.queue_notification(
            ticket_id=body.ticket_id,
            type=body.type,
            recipient_name=body.recipient_name,
            recipient_phone=body.recipient_phone,
            recipient_email=body.recipient_email,
            template_data=body.template_data,
            preferred_channel=body.preferred_channel,
        )
    except ValueError as e:
        logger.warning(
            f"Rejected notification request for ticket {body.ticket_id}: {e}",
            extra={"event": "api.notification.rejected"},
        )
        raise HTTPException(status_code=422, detail=str(e))

    return QueueNotificationResponse(queue_id=queue_id)


@router.get(
    "/notifications/{queue_id}",
    response_model=NotificationView,
    summary="Get a notification and its delivery attempts",
)
def get_notification(queue_id: str, request: Request) -> NotificationView:
    service = _container(request).notification_service
    try:
        entry, logs = service.get_notification(queue_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Notification {queue_id} not found")

    return NotificationView.from_entry(entry, logs)


@router.post("/triggers/process-queue", summary="Run one pending sweep")
def process_queue(request: Request) -> Dict[str, Any]:
    """Dispatch the next batch of due PENDING notifications. No body is required."""
    result = _container(request).pending_sweep.run()
    return result.to_dict()


@router.post("/triggers/schedule-satisfaction", summary="Run satisfaction survey discovery")
def schedule_satisfaction(request: Request) -> Dict[str, Any]:
    """Queue satisfaction survey requests for eligible tickets. No body is required."""
    result = _container(request).survey_discovery.run()
    return result.to_dict()


@router.get("/health", summary="Service health")
def health(request: Request) -> Dict[str, Any]:
    container = _container(request)
    with get_session() as session:
        queue = NotificationQueueRepository(session).count_by_status()

    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "channels": container.available_channels(),
        "queue": queue,
        "scheduler_running": bool(scheduler and scheduler.is_running()),
    }

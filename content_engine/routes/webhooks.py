"""
Provider Webhook Routes

Completion notifications for asynchronous image generation. Anything
short of a storage failure is answered with 200 so the provider stops
retrying; asset persistence failures return 500 so it tries again.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as NotificationError

from content_engine.errors import AssetPersistenceError
from content_engine.jobs.completion import CompletionNotification, CompletionReceiver
from content_engine.security import verify_webhook_token
from content_engine.utils.logging import webhook_logger as logger

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def get_completion_receiver() -> CompletionReceiver:
    return CompletionReceiver()


# =============================================================================
# Webhook Handler
# =============================================================================

@router.post("/image-provider", dependencies=[Depends(verify_webhook_token)])
async def handle_image_provider_webhook(
    request: Request,
    receiver: CompletionReceiver = Depends(get_completion_receiver)
):
    """
    Handle an image provider completion notification.

    Returns {"matched": bool, "jobId": str?}.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        notification = CompletionNotification.model_validate(body)
    except NotificationError:
        raise HTTPException(status_code=400, detail="Notification has no task id")

    logger.info(
        "Provider notification received",
        task_id=notification.task_id,
        status=notification.status,
        urls=len(notification.result_urls)
    )

    try:
        outcome = await receiver.handle(notification)
    except AssetPersistenceError as e:
        logger.error(str(e), task_id=notification.task_id)
        raise HTTPException(status_code=500, detail=str(e))

    response = {"matched": outcome.matched}
    if outcome.job_id:
        response["jobId"] = outcome.job_id
    return response

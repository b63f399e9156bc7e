"""Worker routes (APP_ROLE=worker): inbound message processing lives here."""

from fastapi import APIRouter

from bizchat.api.routes.tasks_messages import TASK_PATH

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks", "accepts": [TASK_PATH]}

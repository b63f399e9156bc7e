"""Routes every role serves: the liveness check for load balancers.

Webhooks, payment callbacks and QR images are mounted beside this router
by `create_app` for the public role.
"""

from fastapi import APIRouter

from bizchat.tasks.client import tasks_backend

router = APIRouter()

SERVICE_NAME = "bizchat"


@router.get("/health")
def health() -> dict:
    """Liveness plus the task backend this process hands inbound messages to."""
    return {"status": "ok", "service": SERVICE_NAME, "tasks_backend": tasks_backend()}

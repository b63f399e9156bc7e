"""HTTP backend for tasks - sends tasks to the worker via HTTP POST.

Used where the webhook-facing app and the worker run as separate
services. The worker authenticates calls with a Google-signed OIDC token,
or with a shared secret in local dev.
"""

import os

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from bizchat.observability.logging import get_logger
from bizchat.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_WORKER_BASE_URL = "http://worker:8000"
HTTP_TIMEOUT = int(os.environ.get("TASKS_HTTP_TIMEOUT", "30"))

# Must match task_auth.LOCAL_DEV_AUDIENCE
LOCAL_DEV_AUDIENCE = "bizchat-tasks-local"


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch a Google ID token for the given audience, None on failure."""
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={
                "extra_fields": safe_log_context(
                    audience=audience,
                    error_type=type(e).__name__,
                )
            },
        )
        return None


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
) -> bool:
    """POST a task to the worker.

    Returns:
        True if the worker answered 2xx, False otherwise.
    """
    worker_base_url = os.environ.get("WORKER_BASE_URL", DEFAULT_WORKER_BASE_URL).rstrip("/")
    url = f"{worker_base_url}{url_path}"
    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
    }

    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        if internal_secret:
            headers["X-Internal-Task-Secret"] = internal_secret
    else:
        token = _fetch_oidc_token(worker_base_url)
        if not token:
            logger.error(
                "HTTP task enqueue aborted: OIDC token unavailable",
                extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
            )
            return False
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id,
                    url_path=url_path,
                    error_type=type(e).__name__,
                )
            },
        )
        return False

    logger.info(
        "HTTP task enqueued",
        extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
    )
    return True

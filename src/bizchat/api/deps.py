"""Process-wide collaborators for the HTTP layer.

The messaging context is built from the environment on first use; tests
inject their own with `set_context` / `set_tasks_client`.
"""

from __future__ import annotations

from bizchat.context import MessagingContext, build_context_from_env
from bizchat.tasks.client import TasksClient

_context: MessagingContext | None = None
_tasks_client: TasksClient | None = None


def get_context() -> MessagingContext:
    global _context
    if _context is None:
        _context = build_context_from_env()
    return _context


def set_context(ctx: MessagingContext | None) -> None:
    global _context
    _context = ctx


def get_tasks_client() -> TasksClient:
    global _tasks_client
    if _tasks_client is None:
        _tasks_client = TasksClient()
    return _tasks_client


def set_tasks_client(client: TasksClient | None) -> None:
    global _tasks_client
    _tasks_client = client

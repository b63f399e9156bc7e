"""ASGI entry point: uvicorn bizchat.api.app:app"""

from .factory import create_app

app = create_app()

"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `backend.asgi:app`.
- Toute la configuration FastAPI est centralisée dans backend.app_setup.factory.
"""

from backend.app import app

__all__ = ["app"]

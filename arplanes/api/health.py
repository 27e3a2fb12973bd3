"""Health check endpoint."""

from fastapi import APIRouter, Request

from arplanes.config import settings

router = APIRouter()


@router.get("/healthz", summary="Health check")
def health_check(request: Request) -> dict[str, str]:
    """Report liveness and the current feed connection state."""
    session = getattr(request.app.state, "session", None)
    feed_state = session.connection_state.value if session else "disconnected"
    return {"status": "ok", "env": settings.arplanes_env, "feed": feed_state}

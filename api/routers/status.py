from fastapi import APIRouter, Depends

from config.settings import Settings
from dependencies import get_settings
from utils.clock import utcnow

router = APIRouter(prefix="", tags=["Status"])


@router.get("/status")
def status(settings: Settings = Depends(get_settings)):
    """Liveness plus which settings are present (never their values)."""
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "environment": settings.describe_environment(),
    }

"""Health check endpoint."""

from fastapi import APIRouter

from rbd_volume_plugin import __version__
from rbd_volume_plugin.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)

"""Plugin handshake endpoint."""

import logging

from fastapi import APIRouter

from rbd_volume_plugin.api.schemas import ActivateResponse
from rbd_volume_plugin.logging_schema import LogEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["plugin"])


@router.post("/Plugin.Activate", response_model=ActivateResponse)
async def activate() -> ActivateResponse:
    """Tell Docker which plugin interfaces are implemented."""
    logger.info("Activating rbd volume driver", extra={"event": LogEvent.PLUGIN_ACTIVATED})
    return ActivateResponse()

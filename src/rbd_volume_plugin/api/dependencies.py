"""API dependencies for dependency injection."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from rbd_volume_plugin.errors import InvalidRequestError
from rbd_volume_plugin.lifecycle import VolumeLifecycle, create_lifecycle

M = TypeVar("M", bound=BaseModel)

# Singleton lifecycle instance
_lifecycle: VolumeLifecycle | None = None


async def init_lifecycle() -> None:
    """Initialize lifecycle singleton.

    Creates VolumeLifecycle and restores persisted mount references.
    Must be called during app startup.
    """
    global _lifecycle
    _lifecycle = create_lifecycle()
    await _lifecycle.restore_references()


def close_lifecycle() -> None:
    """Release the lifecycle singleton."""
    global _lifecycle
    _lifecycle = None


def get_lifecycle() -> VolumeLifecycle:
    """Get lifecycle singleton.

    Returns:
        VolumeLifecycle shared across all driver endpoints.

    Raises:
        RuntimeError: If called before init_lifecycle().
    """
    if _lifecycle is None:
        raise RuntimeError("Lifecycle not initialized. Call init_lifecycle() first.")
    return _lifecycle


def reset_lifecycle() -> None:
    """Reset lifecycle singleton (for testing)."""
    global _lifecycle
    _lifecycle = None


def protocol_body(model: type[M]) -> Callable[[Request], Awaitable[M]]:
    """Dependency parsing the request body as model.

    Docker posts JSON with a vendor content type (and sometimes none), so the
    body is parsed regardless of Content-Type. An empty body counts as {}.
    """

    async def dependency(request: Request) -> M:
        raw = await request.body()
        try:
            return model.model_validate_json(raw or b"{}")
        except ValidationError as e:
            raise InvalidRequestError(
                f"Invalid {model.__name__}: {e.errors(include_url=False)}"
            ) from e

    return dependency

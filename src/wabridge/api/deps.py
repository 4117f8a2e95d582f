"""Access to the process container from request handlers."""

from __future__ import annotations

from fastapi import HTTPException, status

from wabridge.container import Container

# Container instance (set by app lifespan)
_container: Container | None = None


def set_container(container: Container | None) -> None:
    """Set the global container instance."""
    global _container
    _container = container


def current_container() -> Container | None:
    return _container


async def get_container() -> Container:
    """Dependency to get the Container instance."""
    if _container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _container

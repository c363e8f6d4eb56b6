from typing import Annotated
import logging

from fastapi import Depends, HTTPException, Request, status

from returnsdesk.services.returns_manager import ReturnsManager


logger = logging.getLogger(__name__)


def get_returns_manager(request: Request) -> ReturnsManager:
    """
    Dependency to get the ReturnsManager owned by the application.
    The manager is created in the lifespan handler and kept on app.state.
    """
    manager = getattr(request.app.state, "returns_manager", None)
    if manager is None:
        logger.error("Returns manager requested before application startup")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Returns manager is not available",
        )
    return manager


# Type alias for dependency injection
ManagerDep = Annotated[ReturnsManager, Depends(get_returns_manager)]

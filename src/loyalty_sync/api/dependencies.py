"""FastAPI dependencies for business authentication and service injection.

Services are built once in the application lifespan and stored on
app.state; tests replace them through app.dependency_overrides.
"""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from loyalty_sync.domain.repositories import IBusinessSessionRepository
from loyalty_sync.handlers.scan import ScanOrchestrator

logger = structlog.get_logger(__name__)


def get_orchestrator(request: Request) -> ScanOrchestrator:
    """Provide the scan orchestrator built at startup."""
    return request.app.state.orchestrator


def get_session_repository(request: Request) -> IBusinessSessionRepository:
    """Provide the business session repository built at startup."""
    return request.app.state.session_repository


Orchestrator = Annotated[ScanOrchestrator, Depends(get_orchestrator)]
SessionRepo = Annotated[IBusinessSessionRepository, Depends(get_session_repository)]


async def require_business(
    sessions: SessionRepo,
    x_session_token: Annotated[str | None, Header(alias="X-Session-Token")] = None,
    x_business_id: Annotated[str | None, Header(alias="X-Business-ID")] = None,
) -> str:
    """Authenticate the scanning business.

    Returns:
        Business ID of the active session

    Raises:
        HTTPException: 401 if headers are missing or the session is not active
    """
    if not x_session_token or not x_business_id:
        logger.warning("business_auth_missing_headers")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    if not await sessions.is_session_active(x_business_id, x_session_token):
        logger.warning("business_auth_invalid_session", business_id=x_business_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired business session",
        )

    structlog.contextvars.bind_contextvars(business_id=x_business_id)
    return x_business_id


BusinessId = Annotated[str, Depends(require_business)]

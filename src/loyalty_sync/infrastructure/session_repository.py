"""Business session lookups for scan endpoint authentication."""

from loyalty_sync.domain.repositories import IBusinessSessionRepository
from loyalty_sync.infrastructure.database import get_connection


class PostgresBusinessSessionRepository(IBusinessSessionRepository):
    """Validates X-Session-Token / X-Business-ID pairs against business_sessions."""

    async def is_session_active(self, business_id: str, session_token: str) -> bool:
        async with get_connection() as conn:
            found = await conn.fetchval(
                """
                SELECT 1
                FROM business_sessions
                WHERE business_id = $1
                  AND session_token = $2
                  AND is_active = TRUE
                  AND expires_at > NOW()
                """,
                business_id,
                session_token,
            )
        return found is not None

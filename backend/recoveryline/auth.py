"""Bearer token authentication via the auth session table."""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.database import get_db
from recoveryline.models.auth import AuthSession, UserRole
from recoveryline.models.patient import Patient
from recoveryline.utils.time_helpers import utc_now

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Who is calling."""

    user_id: str
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.PROVIDER, UserRole.ADMIN)


async def resolve_token(db: AsyncSession, token: str) -> Identity | None:
    """Look up an unexpired session for a token."""
    result = await db.execute(
        select(AuthSession).where(
            AuthSession.token == token,
            AuthSession.expires_at > utc_now(),
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        return None
    return Identity(user_id=session.user_id, role=session.role)


async def verify_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Validate a bearer token against the auth session table.

    Returns:
        The authenticated identity.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    identity = await resolve_token(db, credentials.credentials)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return identity


async def require_provider(identity: Identity = Depends(verify_bearer_token)) -> Identity:
    """Allow only providers and admins.

    Raises:
        HTTPException: 403 for patients.
    """
    if not identity.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Provider access required",
        )
    return identity


def ensure_patient_access(identity: Identity, patient: Patient) -> None:
    """Patients may only touch their own record.

    Raises:
        HTTPException: 403 when a patient reaches for someone else's data.
    """
    if identity.is_staff:
        return
    if patient.user_id is None or patient.user_id != identity.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access this patient",
        )

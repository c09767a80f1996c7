"""Auth session model.

Sessions are issued by the identity provider; RecoveryLine only reads them
to resolve a bearer token to a user id and role.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from recoveryline.database import Base
from recoveryline.models.types import enum_column
from recoveryline.utils.time_helpers import utc_now


class UserRole(str, enum.Enum):
    """Roles a resolved identity can hold."""

    PATIENT = "patient"
    PROVIDER = "provider"
    ADMIN = "admin"


class AuthSession(Base):
    """Bearer token session."""

    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole, "user_role"),
        nullable=False,
        default=UserRole.PATIENT,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self) -> str:
        return f"<AuthSession(user_id={self.user_id}, role={self.role})>"

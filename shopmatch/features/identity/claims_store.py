"""
Identity platform claims store.

Mirrors the platform's admin API: read a user record, replace its custom
claims. There is no partial update; callers that want to change one claim
must read, merge and write back the whole map.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from shopmatch.core.database import get_db_session, auth_users


class UserNotFoundError(LookupError):
    """No identity record exists for the uid."""


@dataclass
class IdentityRecord:
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    custom_claims: Dict[str, Any] = field(default_factory=dict)


class ClaimsStore(Protocol):
    def get_user(self, uid: str) -> IdentityRecord:
        """Fetch the identity record; raises UserNotFoundError."""
        ...

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        """Replace the user's custom claims wholesale."""
        ...


class SqlClaimsStore:
    """ClaimsStore over the auth_users table."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_user(self, uid: str) -> IdentityRecord:
        with get_db_session(self.session_factory) as session:
            row = session.execute(select(auth_users).where(auth_users.c.uid == uid)).first()
        if row is None:
            raise UserNotFoundError(uid)
        return IdentityRecord(
            uid=row.uid,
            email=row.email,
            display_name=row.display_name,
            custom_claims=dict(row.custom_claims or {}),
        )

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        with get_db_session(self.session_factory) as session:
            result = session.execute(
                update(auth_users)
                .where(auth_users.c.uid == uid)
                .values(custom_claims=dict(claims))
            )
            if result.rowcount == 0:
                raise UserNotFoundError(uid)

    def create_user(self, uid: str, email: Optional[str] = None, display_name: Optional[str] = None) -> IdentityRecord:
        """Register an identity record (sign-up happens on the platform; used by seeding and tests)."""
        with get_db_session(self.session_factory) as session:
            session.execute(
                auth_users.insert().values(uid=uid, email=email, display_name=display_name, custom_claims={})
            )
        return IdentityRecord(uid=uid, email=email, display_name=display_name)

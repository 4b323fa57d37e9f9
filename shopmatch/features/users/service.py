"""
User document service.

The queryable side of a user's entitlement record:
- find_by_customer_id(stripe_customer_id)
- get_user(user_id) / create_user(...)
- update_document(user_id, **fields)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.orm import sessionmaker

from shopmatch.core.database import get_db_session, users


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserDocument:
    user_id: str
    email: Optional[str]
    role: Optional[str]
    stripe_customer_id: Optional[str]
    sub_active: bool
    subscription_id: Optional[str]
    subscription_status: Optional[str]
    updated_at: Optional[datetime]


_DOCUMENT_FIELDS = {
    "email",
    "role",
    "stripe_customer_id",
    "sub_active",
    "subscription_id",
    "subscription_status",
}


def _row_to_document(row) -> UserDocument:
    return UserDocument(
        user_id=row.user_id,
        email=row.email,
        role=row.role,
        stripe_customer_id=row.stripe_customer_id,
        sub_active=bool(row.sub_active),
        subscription_id=row.subscription_id,
        subscription_status=row.subscription_status,
        updated_at=row.updated_at,
    )


class UserDirectory:
    def __init__(self, session_factory: sessionmaker, now_fn: Callable[[], datetime] = utc_now):
        self.session_factory = session_factory
        self.now_fn = now_fn

    def get_user(self, user_id: str) -> Optional[UserDocument]:
        with get_db_session(self.session_factory) as session:
            row = session.execute(select(users).where(users.c.user_id == user_id)).first()
        return _row_to_document(row) if row else None

    def find_by_customer_id(self, stripe_customer_id: str) -> Optional[UserDocument]:
        """First user document linked to the billing customer, if any."""
        with get_db_session(self.session_factory) as session:
            row = session.execute(
                select(users)
                .where(users.c.stripe_customer_id == stripe_customer_id)
                .limit(1)
            ).first()
        return _row_to_document(row) if row else None

    def create_user(self, user_id: str, email: Optional[str] = None, role: Optional[str] = None) -> UserDocument:
        now = self.now_fn()
        with get_db_session(self.session_factory) as session:
            session.execute(
                insert(users).values(
                    user_id=user_id,
                    email=email,
                    role=role,
                    sub_active=False,
                    created_at=now,
                    updated_at=now,
                )
            )
        return UserDocument(
            user_id=user_id,
            email=email,
            role=role,
            stripe_customer_id=None,
            sub_active=False,
            subscription_id=None,
            subscription_status=None,
            updated_at=now,
        )

    def update_document(self, user_id: str, **fields: Any) -> bool:
        """
        Set the given fields (plus updated_at) on the user's document.

        Returns False when no document exists for user_id.
        """
        unknown = set(fields) - _DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown user document fields: {', '.join(sorted(unknown))}")

        with get_db_session(self.session_factory) as session:
            result = session.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(**fields, updated_at=self.now_fn())
            )
            return result.rowcount > 0

    def list_users(self) -> List[UserDocument]:
        with get_db_session(self.session_factory) as session:
            rows = session.execute(select(users).order_by(users.c.user_id)).fetchall()
        return [_row_to_document(row) for row in rows]

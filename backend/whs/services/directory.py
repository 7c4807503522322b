"""User directory: resolves reporter, approver and assignee references."""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from whs.errors import NotFound, ValidationError
from whs.models.authz import User


@dataclass(frozen=True)
class UserRef:
    id: int
    display_name: str
    email: Optional[str] = None
    is_active: bool = True

    def to_json(self):
        return {'id': self.id, 'display_name': self.display_name}


def _ref(user: User) -> UserRef:
    return UserRef(id=user.id, display_name=user.display_name, email=user.email, is_active=bool(user.is_active))


class SqlUserDirectory:
    def __init__(self, session: Session):
        self.session = session

    def find_user(self, user_id) -> Optional[UserRef]:
        try:
            uid = int(user_id)
        except (TypeError, ValueError):
            return None
        user = self.session.get(User, uid)
        return _ref(user) if user else None

    def resolve_user(self, user_id, field: str = 'user_id') -> UserRef:
        """Return an active user or raise; `field` names the input in validation errors."""
        ref = self.find_user(user_id)
        if ref is None:
            raise NotFound('User', user_id)
        if not ref.is_active:
            raise ValidationError({field: 'User is inactive'})
        return ref

    def list_active_users(self) -> List[UserRef]:
        rows = self.session.execute(
            select(User).where(User.is_active.is_(True)).order_by(User.name.asc(), User.id.asc())
        ).scalars().all()
        return [_ref(u) for u in rows]

"""
In-memory user store.

The store is the data-lookup collaborator for resolvers and rules. It is
created once and injected wherever it is needed; nothing reads it through
module state.
"""

import itertools
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger


class Role(str, Enum):
    """User roles."""
    USER = "USER"
    ADMIN = "ADMIN"


class User(BaseModel):
    """User record."""
    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: Role = Field(Role.USER, description="Role")


def sample_users() -> List[User]:
    """Seed data for local runs."""
    return [
        User(id="1", name="Jamie", role=Role.USER, email="jamie@graphql.wtf"),
        User(id="2", name="Michael", role=Role.ADMIN, email="michael@example.org"),
        User(id="3", name="Daniel", role=Role.USER, email="daniel@example.org"),
    ]


class UserStore:
    """Users keyed by id. Ids for new users never repeat."""

    def __init__(self, users: Optional[Iterable[User]] = None):
        self.logger = get_logger("graphql.users")
        self._users: Dict[str, User] = {}
        for user in users or []:
            self._users[user.id] = user
        numeric_ids = [int(uid) for uid in self._users if uid.isdigit()]
        self._ids = itertools.count(max(numeric_ids, default=0) + 1)

    async def get(self, user_id: Optional[str]) -> Optional[User]:
        if user_id is None:
            return None
        return self._users.get(user_id)

    async def list(self) -> List[User]:
        return list(self._users.values())

    async def email_exists(self, email: str) -> bool:
        email = email.strip().lower()
        return any(user.email.lower() == email for user in self._users.values())

    async def create(self, name: str, email: str, role: Role = Role.USER) -> User:
        user_id = str(next(self._ids))
        while user_id in self._users:
            user_id = str(next(self._ids))
        user = User(id=user_id, name=name, email=email, role=role)
        self._users[user.id] = user
        self.logger.info("User created", created_user_id=user.id, role=user.role.value)
        return user

    def __len__(self) -> int:
        return len(self._users)

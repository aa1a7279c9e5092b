"""Domain Entities - Auth"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional, List

from domain.enums import Role


class User(BaseModel):
    """Acting principal; business_unit_ids scopes everyone except ADMIN"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False
    role: Role = Role.FRONT_DESK
    business_unit_ids: List[UUID] = []

    class Config:
        from_attributes = True

    def has_role(self, *roles: Role) -> bool:
        return self.role == Role.ADMIN or self.role in roles

    def can_access(self, business_unit_id: UUID) -> bool:
        return self.role == Role.ADMIN or business_unit_id in self.business_unit_ids


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str


SYSTEM_USER = User(
    user_id=UUID("00000000-0000-0000-0000-000000000000"),
    username="system",
    full_name="Scheduled jobs",
    role=Role.ADMIN,
)

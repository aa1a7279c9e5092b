"""Authorization and audit helpers shared by the application services"""
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from domain.auth import User
from domain.entities import AuditEntry
from domain.enums import Role
from domain.errors import PermissionDenied
from domain.repositories import UnitOfWork

Clock = Callable[[], datetime]

CATALOG_ROLES = (Role.MANAGER,)
FRONT_DESK_ROLES = (Role.MANAGER, Role.FRONT_DESK)
HOUSEKEEPING_ROLES = (Role.MANAGER, Role.HOUSEKEEPING, Role.FRONT_DESK)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def authorize(principal: User, business_unit_id: Optional[UUID], *roles: Role) -> None:
    """Raise PermissionDenied unless principal has a role and scope for the property"""
    if roles and not principal.has_role(*roles):
        raise PermissionDenied(f"User '{principal.username}' ({principal.role.value}) may not do this")
    if business_unit_id is not None and not principal.can_access(business_unit_id):
        raise PermissionDenied(f"User '{principal.username}' has no access to business unit {business_unit_id}")


async def audit(
    uow: UnitOfWork,
    entity_type: str,
    entity_id: UUID,
    action: str,
    principal: User,
    at: datetime,
    from_status=None,
    to_status=None,
    reason: Optional[str] = None,
    **details,
) -> AuditEntry:
    """Append an audit entry inside the caller's transaction"""
    entry = AuditEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        from_status=getattr(from_status, "value", from_status),
        to_status=getattr(to_status, "value", to_status),
        principal=principal.username,
        reason=reason,
        details={k: str(v) for k, v in details.items()},
        recorded_at=at,
    )
    return await uow.audit.append(entry)

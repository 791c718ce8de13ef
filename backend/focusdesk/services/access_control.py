"""Role hierarchy checks.

Roles are totally ordered guest < user < manager < admin. A Focus is visible
to a caller whose role is at least the lowest role it is assigned to.
"""

from collections.abc import Callable, Iterable

from focusdesk.exceptions import InvalidRoleError, PermissionDeniedError
from focusdesk.schemas.focus import Focus
from focusdesk.schemas.user import Role

ROLE_ORDER: tuple[Role, ...] = (Role.guest, Role.user, Role.manager, Role.admin)


def parse_role(value: object, field: str = "role") -> Role:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            pass
    raise InvalidRoleError(value, field=field)


def role_level(role: object) -> int:
    return ROLE_ORDER.index(parse_role(role))


def minimum_level(roles: Iterable[object]) -> int:
    levels = [role_level(role) for role in roles]
    if not levels:
        raise InvalidRoleError([], field="assigned_roles")
    return min(levels)


def visible(focus: Focus, caller_role: object) -> bool:
    return role_level(caller_role) >= minimum_level(focus.assigned_roles)


def can_mutate(caller_role: object) -> bool:
    return parse_role(caller_role) == Role.admin


def can_create_focus(caller_role: object) -> bool:
    return parse_role(caller_role) == Role.admin


def require(predicate: Callable[[object], bool], action: str, caller_role: object) -> None:
    if not predicate(caller_role):
        raise PermissionDeniedError(action, str(caller_role))

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from focusdesk.events import EventChannel, FocusDeleted
from focusdesk.exceptions import FieldValidationError, NotFoundError
from focusdesk.repositories.base import FocusStore, UserMappingStore
from focusdesk.schemas.focus import Focus, FocusCreate, FocusType, FocusUpdate
from focusdesk.schemas.layout import LayoutTarget, WorkspaceSnapshot
from focusdesk.schemas.user import Role
from focusdesk.services import access_control
from focusdesk.services.layout_service import LayoutPersistence, parse_snapshot
from focusdesk.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100

STANDARD_FOCUSES: list[dict[str, Any]] = [
    {
        "name": "Performance Dashboard",
        "description": "Monitor real-time revenue performance",
        "assigned_roles": ["user", "manager", "admin"],
        "is_default": True,
    },
    {
        "name": "Exception Management",
        "description": "Monitor and manage exceptions",
        "assigned_roles": ["manager", "admin"],
    },
    {
        "name": "Inventory Management",
        "description": "Manage cabin inventory and availability",
        "assigned_roles": ["manager", "admin"],
    },
    {
        "name": "Set-up",
        "description": "System configuration and administration",
        "assigned_roles": ["admin"],
    },
]


def validate_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise FieldValidationError("name", "must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise FieldValidationError("name", f"must be at most {MAX_NAME_LENGTH} characters")
    return name


def validate_type(value: str | FocusType) -> FocusType:
    try:
        return FocusType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in FocusType)
        raise FieldValidationError("type", f"must be one of {allowed}") from None


def validate_roles(values: list[str] | list[Role] | None) -> list[Role]:
    if not values:
        raise FieldValidationError("assigned_roles", "must contain at least one role")
    roles = {access_control.parse_role(value, field="assigned_roles") for value in values}
    return sorted(roles, key=access_control.role_level)


class FocusRegistry:
    def __init__(
        self,
        focuses: FocusStore,
        preferences: PreferenceService,
        layouts: LayoutPersistence,
        users: UserMappingStore | None = None,
        events: EventChannel | None = None,
    ):
        self.focuses = focuses
        self.preferences = preferences
        self.layouts = layouts
        self.users = users
        self.events = events

    async def list(
        self,
        caller_role: Role | str,
        user_id: int | None = None,
        type: str | None = None,
        created_by: int | None = None,
    ) -> list[Focus]:
        """Active focuses visible to ``caller_role``.

        Ordered default first, then the user's favorites, then by name
        (case-insensitive) with the id as a final tie-break.
        """
        focus_type = validate_type(type) if type is not None else None
        favorites = await self.preferences.favorite_ids(user_id) if user_id is not None else set()

        focuses = [
            focus
            for focus in await self.focuses.list_active()
            if access_control.visible(focus, caller_role)
            and (focus_type is None or focus.type == focus_type)
            and (created_by is None or focus.created_by == created_by)
        ]
        return sorted(
            focuses,
            key=lambda f: (not f.is_default, f.id not in favorites, f.name.casefold(), str(f.id)),
        )

    async def get(self, focus_id: uuid.UUID) -> Focus:
        focus = await self.focuses.get(focus_id)
        if focus is None or not focus.is_active:
            raise NotFoundError("Focus", focus_id)
        return focus

    async def get_visible(self, focus_id: uuid.UUID, caller_role: Role | str) -> Focus:
        """Like get, but a focus the caller may not see is reported as missing."""
        focus = await self.get(focus_id)
        if not access_control.visible(focus, caller_role):
            raise NotFoundError("Focus", focus_id)
        return focus

    async def create(self, data: FocusCreate, caller_role: Role | str, created_by: int) -> Focus:
        access_control.require(access_control.can_create_focus, "create focuses", caller_role)

        name = validate_name(data.name)
        focus_type = validate_type(data.type)
        roles = validate_roles(data.assigned_roles)
        document = None
        if data.layout_data is not None:
            snapshot = parse_snapshot(data.layout_data, field="layout_data")
            document = snapshot.to_document(self.layouts.schema_version)

        now = datetime.now(timezone.utc)
        focus = Focus(
            id=uuid.uuid4(),
            name=name,
            description=data.description.strip(),
            type=focus_type,
            assigned_roles=roles,
            is_default=data.is_default,
            is_active=True,
            created_by=created_by,
            layout_data=document,
            layout_revision=1 if document is not None else 0,
            created_at=now,
            updated_at=now,
        )
        focus = await self.focuses.insert(focus)
        logger.info("Created focus %s (%s) for roles %s", focus.id, focus.name, [r.value for r in roles])

        if focus.is_default:
            await self._demote_other_defaults(focus)
        return focus

    async def update(self, focus_id: uuid.UUID, patch: FocusUpdate, caller_role: Role | str) -> Focus:
        access_control.require(access_control.can_mutate, "update focuses", caller_role)
        focus = await self.get(focus_id)

        changes: dict[str, Any] = {}
        fields = patch.model_fields_set
        if "name" in fields:
            changes["name"] = validate_name(patch.name)
        if "description" in fields:
            changes["description"] = (patch.description or "").strip()
        if "type" in fields:
            changes["type"] = validate_type(patch.type or "")
        if "assigned_roles" in fields:
            changes["assigned_roles"] = validate_roles(patch.assigned_roles)
        if "is_default" in fields and patch.is_default is not None:
            changes["is_default"] = patch.is_default
        snapshot: WorkspaceSnapshot | None = None
        if "layout_data" in fields and patch.layout_data is not None:
            snapshot = parse_snapshot(patch.layout_data, field="layout_data")

        changes["updated_at"] = datetime.now(timezone.utc)
        focus = await self.focuses.save(focus.model_copy(update=changes))
        if snapshot is not None:
            await self.layouts.save(LayoutTarget.for_focus(focus.id), snapshot)
            focus = await self.get(focus.id)
        logger.info("Updated focus %s: %s", focus.id, sorted(fields))

        if focus.is_default:
            await self._demote_other_defaults(focus)
        return focus

    async def delete(self, focus_id: uuid.UUID, caller_role: Role | str) -> int:
        """Soft-delete a focus and move users that had it selected elsewhere.

        Returns the number of users whose current focus was redirected.
        """
        access_control.require(access_control.can_mutate, "delete focuses", caller_role)
        focus = await self.get(focus_id)

        await self.focuses.save(
            focus.model_copy(update={"is_active": False, "updated_at": datetime.now(timezone.utc)})
        )
        redirected = await self.preferences.redirect_current(focus_id, self._fallback_for_user)
        logger.info("Deleted focus %s (%s); redirected %d users", focus_id, focus.name, redirected)

        if self.events is not None:
            self.events.publish(FocusDeleted(focus_id=focus_id, redirected_users=redirected))
        return redirected

    async def save_layout(
        self, focus_id: uuid.UUID, snapshot: WorkspaceSnapshot | dict[str, Any], caller_role: Role | str
    ) -> int:
        access_control.require(access_control.can_mutate, "save focus layouts", caller_role)
        await self.get(focus_id)
        return await self.layouts.save(LayoutTarget.for_focus(focus_id), snapshot)

    async def share(self, focus_id: uuid.UUID, shared: bool, caller_role: Role | str) -> Focus:
        access_control.require(access_control.can_mutate, "share focuses", caller_role)
        focus = await self.get(focus_id)
        focus_type = FocusType.shared if shared else FocusType.user
        if focus.type == focus_type:
            return focus
        focus = await self.focuses.save(
            focus.model_copy(update={"type": focus_type, "updated_at": datetime.now(timezone.utc)})
        )
        logger.info("Focus %s is now %s", focus.id, focus_type)
        return focus

    async def seed_standard_focuses(self, caller_role: Role | str, created_by: int) -> list[Focus]:
        """Create the standard focus set, skipping any whose name already exists."""
        access_control.require(access_control.can_create_focus, "create focuses", caller_role)
        existing = {focus.name.casefold() for focus in await self.focuses.list_active()}

        created = []
        for definition in STANDARD_FOCUSES:
            if definition["name"].casefold() in existing:
                continue
            data = FocusCreate(type=FocusType.standard.value, **definition)
            created.append(await self.create(data, caller_role, created_by))
        return created

    async def _demote_other_defaults(self, focus: Focus) -> None:
        scope = set(focus.assigned_roles)
        for other in await self.focuses.list_active():
            if other.id == focus.id or not other.is_default:
                continue
            if scope.isdisjoint(other.assigned_roles):
                continue
            await self.focuses.save(
                other.model_copy(update={"is_default": False, "updated_at": datetime.now(timezone.utc)})
            )
            logger.info("Focus %s is no longer default (replaced by %s)", other.id, focus.id)

    async def _user_role(self, user_id: int) -> Role:
        if self.users is None:
            return Role.guest
        user = await self.users.get_user(user_id)
        return user.role if user is not None else Role.guest

    async def _fallback_for_user(self, user_id: int) -> uuid.UUID | None:
        candidates = await self.list(await self._user_role(user_id), user_id=user_id)
        for candidate in candidates:
            if candidate.is_default:
                return candidate.id
        return candidates[0].id if candidates else None

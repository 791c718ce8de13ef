"""In-memory storage backend.

Used by the test suite and for running the API without a database. Every
read and write copies records so callers never share state with the store.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from focusdesk.exceptions import MappingConflictError, NotFoundError
from focusdesk.repositories.base import Stores
from focusdesk.schemas.focus import Focus
from focusdesk.schemas.layout import LayoutTarget, LayoutTargetKind, StoredLayout
from focusdesk.schemas.preference import UserFocusPreference, WorkspaceSettings
from focusdesk.schemas.user import InternalUser, Role, UserMapping


@dataclass
class MemoryDatabase:
    next_internal_id: int | None = None
    bootstrap_claimed: bool = False
    mappings: dict[int, UserMapping] = field(default_factory=dict)
    users: dict[int, InternalUser] = field(default_factory=dict)
    focuses: dict[uuid.UUID, Focus] = field(default_factory=dict)
    preferences: dict[tuple[int, uuid.UUID], UserFocusPreference] = field(default_factory=dict)
    settings: dict[int, WorkspaceSettings] = field(default_factory=dict)
    local_layouts: dict[int, StoredLayout] = field(default_factory=dict)


class MemoryUserMappingStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    def _find(self, **criteria: Any) -> UserMapping | None:
        for mapping in self.db.mappings.values():
            if all(getattr(mapping, key) == value for key, value in criteria.items()):
                return mapping.model_copy()
        return None

    async def get_by_external_id(self, external_id: str) -> UserMapping | None:
        return self._find(external_id=external_id)

    async def get_by_email(self, email: str) -> UserMapping | None:
        return self._find(email=email)

    async def touch(self, internal_user_id: int, seen_at: datetime) -> None:
        mapping = self.db.mappings.get(internal_user_id)
        if mapping is not None:
            mapping.last_seen_at = seen_at

    async def attach_external_id(
        self, internal_user_id: int, external_id: str, seen_at: datetime
    ) -> UserMapping:
        owner = self._find(external_id=external_id)
        if owner is not None and owner.internal_user_id != internal_user_id:
            raise MappingConflictError(external_id)
        mapping = self.db.mappings.get(internal_user_id)
        if mapping is None:
            raise NotFoundError("User mapping", internal_user_id)
        mapping.external_id = external_id
        mapping.last_seen_at = seen_at
        return mapping.model_copy()

    async def allocate_internal_id(self, start: int) -> int:
        if self.db.next_internal_id is None:
            self.db.next_internal_id = start
        allocated = self.db.next_internal_id
        self.db.next_internal_id += 1
        return allocated

    async def insert_if_absent(self, mapping: UserMapping, user: InternalUser) -> bool:
        if (
            mapping.internal_user_id in self.db.mappings
            or self._find(external_id=mapping.external_id) is not None
            or self._find(email=mapping.email) is not None
        ):
            return False
        self.db.mappings[mapping.internal_user_id] = mapping.model_copy()
        self.db.users[user.internal_user_id] = user.model_copy()
        return True

    async def claim_bootstrap_admin(self) -> bool:
        if self.db.bootstrap_claimed:
            return False
        self.db.bootstrap_claimed = True
        return True

    async def get_user(self, internal_user_id: int) -> InternalUser | None:
        user = self.db.users.get(internal_user_id)
        return user.model_copy() if user else None

    async def set_role(self, internal_user_id: int, role: Role) -> InternalUser | None:
        user = self.db.users.get(internal_user_id)
        if user is None:
            return None
        user.role = role
        return user.model_copy()

    async def list_users(self) -> list[tuple[UserMapping, InternalUser]]:
        return [
            (self.db.mappings[user_id].model_copy(), user.model_copy())
            for user_id, user in sorted(self.db.users.items())
        ]

    async def ping(self) -> None:
        return None


class MemoryFocusStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def get(self, focus_id: uuid.UUID) -> Focus | None:
        focus = self.db.focuses.get(focus_id)
        return focus.model_copy(deep=True) if focus else None

    async def list_active(self) -> list[Focus]:
        return [f.model_copy(deep=True) for f in self.db.focuses.values() if f.is_active]

    async def insert(self, focus: Focus) -> Focus:
        self.db.focuses[focus.id] = focus.model_copy(deep=True)
        return focus.model_copy(deep=True)

    async def save(self, focus: Focus) -> Focus:
        stored = self.db.focuses.get(focus.id)
        if stored is None:
            raise NotFoundError("Focus", focus.id)
        # Layout fields are owned by the layout store
        updated = focus.model_copy(
            update={"layout_data": stored.layout_data, "layout_revision": stored.layout_revision},
            deep=True,
        )
        self.db.focuses[focus.id] = updated
        return updated.model_copy(deep=True)


class MemoryPreferenceStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def get_preference(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference | None:
        preference = self.db.preferences.get((user_id, focus_id))
        return preference.model_copy(deep=True) if preference else None

    async def upsert_preference(self, preference: UserFocusPreference) -> UserFocusPreference:
        key = (preference.user_id, preference.focus_id)
        stored = self.db.preferences.get(key)
        update = {"is_favorite": preference.is_favorite, "last_used_at": preference.last_used_at}
        if stored is None:
            stored = UserFocusPreference(user_id=preference.user_id, focus_id=preference.focus_id)
        stored = stored.model_copy(update=update)
        self.db.preferences[key] = stored
        return stored.model_copy(deep=True)

    async def favorite_ids(self, user_id: int) -> set[uuid.UUID]:
        return {
            focus_id
            for (owner, focus_id), preference in self.db.preferences.items()
            if owner == user_id and preference.is_favorite
        }

    async def get_settings(self, user_id: int) -> WorkspaceSettings | None:
        settings = self.db.settings.get(user_id)
        return settings.model_copy() if settings else None

    async def compare_and_set_current(
        self, user_id: int, focus_id: uuid.UUID | None, expected_version: int | None
    ) -> bool:
        stored = self.db.settings.get(user_id)
        if expected_version is None:
            if stored is not None:
                return False
            self.db.settings[user_id] = WorkspaceSettings(
                user_id=user_id, current_focus_id=focus_id, version=1
            )
            return True
        if stored is None or stored.version != expected_version:
            return False
        self.db.settings[user_id] = stored.model_copy(
            update={"current_focus_id": focus_id, "version": stored.version + 1}
        )
        return True

    async def users_on_focus(self, focus_id: uuid.UUID) -> list[WorkspaceSettings]:
        return [s.model_copy() for s in self.db.settings.values() if s.current_focus_id == focus_id]


class MemoryLayoutStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def read(self, target: LayoutTarget) -> StoredLayout | None:
        if target.kind == LayoutTargetKind.focus:
            focus = self.db.focuses.get(target.focus_id)
            if focus is None:
                return None
            return StoredLayout(copy.deepcopy(focus.layout_data), focus.layout_revision)
        if target.kind == LayoutTargetKind.local:
            stored = self.db.local_layouts.get(target.user_id)
            if stored is None:
                return None
            return StoredLayout(copy.deepcopy(stored.document), stored.revision)
        preference = self.db.preferences.get((target.user_id, target.focus_id))
        if preference is None:
            return None
        return StoredLayout(copy.deepcopy(preference.custom_layout), preference.layout_revision)

    async def write(self, target: LayoutTarget, document: dict[str, Any]) -> int:
        document = copy.deepcopy(document)
        if target.kind == LayoutTargetKind.focus:
            focus = self.db.focuses.get(target.focus_id)
            if focus is None:
                raise NotFoundError("Focus", target.focus_id)
            revision = focus.layout_revision + 1
            self.db.focuses[focus.id] = focus.model_copy(
                update={"layout_data": document, "layout_revision": revision}
            )
            return revision
        if target.kind == LayoutTargetKind.local:
            previous = self.db.local_layouts.get(target.user_id)
            revision = (previous.revision if previous else 0) + 1
            self.db.local_layouts[target.user_id] = StoredLayout(document, revision)
            return revision
        key = (target.user_id, target.focus_id)
        preference = self.db.preferences.get(key) or UserFocusPreference(
            user_id=target.user_id, focus_id=target.focus_id
        )
        revision = preference.layout_revision + 1
        self.db.preferences[key] = preference.model_copy(
            update={"custom_layout": document, "layout_revision": revision}
        )
        return revision

    async def clear(self, target: LayoutTarget) -> None:
        """Drop the document and advance the revision."""
        if target.kind == LayoutTargetKind.focus:
            focus = self.db.focuses.get(target.focus_id)
            if focus is not None:
                self.db.focuses[focus.id] = focus.model_copy(
                    update={"layout_data": None, "layout_revision": focus.layout_revision + 1}
                )
        elif target.kind == LayoutTargetKind.local:
            previous = self.db.local_layouts.get(target.user_id)
            if previous is not None:
                self.db.local_layouts[target.user_id] = StoredLayout(None, previous.revision + 1)
        else:
            preference = self.db.preferences.get((target.user_id, target.focus_id))
            if preference is not None:
                self.db.preferences[(target.user_id, target.focus_id)] = preference.model_copy(
                    update={"custom_layout": None, "layout_revision": preference.layout_revision + 1}
                )


def memory_stores(db: MemoryDatabase | None = None) -> Stores:
    db = db or MemoryDatabase()
    return Stores(
        users=MemoryUserMappingStore(db),
        focuses=MemoryFocusStore(db),
        preferences=MemoryPreferenceStore(db),
        layouts=MemoryLayoutStore(db),
    )

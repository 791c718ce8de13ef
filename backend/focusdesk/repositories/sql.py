"""SQLAlchemy storage backend.

Each write commits its own transaction so the uniqueness constraints on
``user_mappings`` and the version checks on ``workspace_settings`` are the
arbiters between concurrent sessions.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import insert, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from focusdesk.exceptions import MappingConflictError, NotFoundError
from focusdesk.models.focus import FocusRecord
from focusdesk.models.preference import FocusPreferenceRecord, WorkspaceSettingsRecord
from focusdesk.models.user import IdSequence, UserMappingRecord, UserRecord
from focusdesk.repositories.base import (
    BOOTSTRAP_ADMIN_SEQUENCE,
    INTERNAL_USER_SEQUENCE,
    Stores,
    storage_call,
)
from focusdesk.schemas.focus import Focus
from focusdesk.schemas.layout import LayoutTarget, LayoutTargetKind, StoredLayout
from focusdesk.schemas.preference import UserFocusPreference, WorkspaceSettings
from focusdesk.schemas.user import InternalUser, Role, UserMapping

logger = logging.getLogger(__name__)

sequences = IdSequence.__table__
focuses = FocusRecord.__table__
focus_preferences = FocusPreferenceRecord.__table__
workspace_settings = WorkspaceSettingsRecord.__table__


def _select(model: Any):
    # Rows may have been changed by Core UPDATEs in this session
    return select(model).execution_options(populate_existing=True)


class SqlStore:
    def __init__(self, db: AsyncSession, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout


class SqlUserMappingStore(SqlStore):
    async def _mapping_where(self, *criteria: Any) -> UserMapping | None:
        result = await self.db.execute(_select(UserMappingRecord).where(*criteria))
        record = result.scalar_one_or_none()
        return UserMapping.model_validate(record) if record else None

    @storage_call
    async def get_by_external_id(self, external_id: str) -> UserMapping | None:
        return await self._mapping_where(UserMappingRecord.external_id == external_id)

    @storage_call
    async def get_by_email(self, email: str) -> UserMapping | None:
        return await self._mapping_where(UserMappingRecord.email == email)

    @storage_call
    async def touch(self, internal_user_id: int, seen_at: datetime) -> None:
        await self.db.execute(
            update(UserMappingRecord.__table__)
            .where(UserMappingRecord.__table__.c.internal_user_id == internal_user_id)
            .values(last_seen_at=seen_at)
        )
        await self.db.commit()

    @storage_call
    async def attach_external_id(
        self, internal_user_id: int, external_id: str, seen_at: datetime
    ) -> UserMapping:
        table = UserMappingRecord.__table__
        try:
            result = await self.db.execute(
                update(table)
                .where(table.c.internal_user_id == internal_user_id)
                .values(external_id=external_id, last_seen_at=seen_at)
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise MappingConflictError(external_id) from e

        if result.rowcount == 0:
            raise NotFoundError("User mapping", internal_user_id)
        mapping = await self._mapping_where(UserMappingRecord.internal_user_id == internal_user_id)
        if mapping is None:
            raise NotFoundError("User mapping", internal_user_id)
        return mapping

    async def _ensure_sequence(self, name: str, initial: int) -> None:
        exists = await self.db.execute(select(sequences.c.name).where(sequences.c.name == name))
        if exists.scalar_one_or_none() is not None:
            return
        try:
            await self.db.execute(insert(sequences).values(name=name, value=initial))
            await self.db.commit()
        except IntegrityError:
            # Another session created it first
            await self.db.rollback()

    @storage_call
    async def allocate_internal_id(self, start: int) -> int:
        advance = (
            update(sequences)
            .where(sequences.c.name == INTERNAL_USER_SEQUENCE)
            .values(value=sequences.c.value + 1)
            .returning(sequences.c.value)
        )
        result = await self.db.execute(advance)
        allocated = result.scalar_one_or_none()
        if allocated is None:
            await self._ensure_sequence(INTERNAL_USER_SEQUENCE, start - 1)
            result = await self.db.execute(advance)
            allocated = result.scalar_one()
        await self.db.commit()
        return allocated

    @storage_call
    async def insert_if_absent(self, mapping: UserMapping, user: InternalUser) -> bool:
        try:
            self.db.add(UserMappingRecord(**mapping.model_dump()))
            await self.db.flush()
            self.db.add(
                UserRecord(
                    internal_user_id=user.internal_user_id,
                    email=user.email,
                    role=user.role.value,
                    is_active=user.is_active,
                    created_at=user.created_at,
                )
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    @storage_call
    async def claim_bootstrap_admin(self) -> bool:
        await self._ensure_sequence(BOOTSTRAP_ADMIN_SEQUENCE, 0)
        result = await self.db.execute(
            update(sequences)
            .where(sequences.c.name == BOOTSTRAP_ADMIN_SEQUENCE, sequences.c.value == 0)
            .values(value=1)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _user(self, internal_user_id: int) -> InternalUser | None:
        result = await self.db.execute(
            _select(UserRecord).where(UserRecord.internal_user_id == internal_user_id)
        )
        record = result.scalar_one_or_none()
        return InternalUser.model_validate(record) if record else None

    @storage_call
    async def get_user(self, internal_user_id: int) -> InternalUser | None:
        return await self._user(internal_user_id)

    @storage_call
    async def set_role(self, internal_user_id: int, role: Role) -> InternalUser | None:
        table = UserRecord.__table__
        await self.db.execute(
            update(table).where(table.c.internal_user_id == internal_user_id).values(role=role.value)
        )
        await self.db.commit()
        return await self._user(internal_user_id)

    @storage_call
    async def list_users(self) -> list[tuple[UserMapping, InternalUser]]:
        result = await self.db.execute(
            select(UserMappingRecord, UserRecord)
            .join(UserRecord, UserRecord.internal_user_id == UserMappingRecord.internal_user_id)
            .order_by(UserMappingRecord.internal_user_id)
            .execution_options(populate_existing=True)
        )
        return [
            (UserMapping.model_validate(mapping), InternalUser.model_validate(user))
            for mapping, user in result.all()
        ]

    @storage_call
    async def ping(self) -> None:
        await self.db.execute(text("SELECT 1"))


def _focus_values(focus: Focus) -> dict[str, Any]:
    return {
        "name": focus.name,
        "description": focus.description,
        "type": focus.type.value,
        "assigned_roles": [role.value for role in focus.assigned_roles],
        "is_default": focus.is_default,
        "is_active": focus.is_active,
        "updated_at": focus.updated_at,
    }


class SqlFocusStore(SqlStore):
    async def _get(self, focus_id: uuid.UUID) -> Focus | None:
        result = await self.db.execute(_select(FocusRecord).where(FocusRecord.id == focus_id))
        record = result.scalar_one_or_none()
        return Focus.model_validate(record) if record else None

    @storage_call
    async def get(self, focus_id: uuid.UUID) -> Focus | None:
        return await self._get(focus_id)

    @storage_call
    async def list_active(self) -> list[Focus]:
        result = await self.db.execute(_select(FocusRecord).where(FocusRecord.is_active.is_(True)))
        return [Focus.model_validate(record) for record in result.scalars().all()]

    @storage_call
    async def insert(self, focus: Focus) -> Focus:
        record = FocusRecord(
            id=focus.id,
            created_by=focus.created_by,
            created_at=focus.created_at,
            layout_data=focus.layout_data,
            layout_revision=focus.layout_revision,
            **_focus_values(focus),
        )
        self.db.add(record)
        await self.db.commit()
        return await self._get(focus.id)

    @storage_call
    async def save(self, focus: Focus) -> Focus:
        result = await self.db.execute(
            update(focuses).where(focuses.c.id == focus.id).values(**_focus_values(focus))
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise NotFoundError("Focus", focus.id)
        return await self._get(focus.id)


class SqlPreferenceStore(SqlStore):
    async def _preference(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference | None:
        result = await self.db.execute(
            _select(FocusPreferenceRecord).where(
                FocusPreferenceRecord.user_id == user_id,
                FocusPreferenceRecord.focus_id == focus_id,
            )
        )
        record = result.scalar_one_or_none()
        return UserFocusPreference.model_validate(record) if record else None

    @storage_call
    async def get_preference(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference | None:
        return await self._preference(user_id, focus_id)

    @storage_call
    async def upsert_preference(self, preference: UserFocusPreference) -> UserFocusPreference:
        values = {"is_favorite": preference.is_favorite, "last_used_at": preference.last_used_at}
        where = (
            focus_preferences.c.user_id == preference.user_id,
            focus_preferences.c.focus_id == preference.focus_id,
        )
        result = await self.db.execute(update(focus_preferences).where(*where).values(**values))
        if result.rowcount == 0:
            try:
                await self.db.execute(
                    insert(focus_preferences).values(
                        user_id=preference.user_id, focus_id=preference.focus_id, **values
                    )
                )
            except IntegrityError:
                # Created concurrently; fall back to the update
                await self.db.rollback()
                await self.db.execute(update(focus_preferences).where(*where).values(**values))
        await self.db.commit()
        return await self._preference(preference.user_id, preference.focus_id)

    @storage_call
    async def favorite_ids(self, user_id: int) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(focus_preferences.c.focus_id).where(
                focus_preferences.c.user_id == user_id,
                focus_preferences.c.is_favorite.is_(True),
            )
        )
        return set(result.scalars().all())

    @storage_call
    async def get_settings(self, user_id: int) -> WorkspaceSettings | None:
        result = await self.db.execute(
            _select(WorkspaceSettingsRecord).where(WorkspaceSettingsRecord.user_id == user_id)
        )
        record = result.scalar_one_or_none()
        return WorkspaceSettings.model_validate(record) if record else None

    @storage_call
    async def compare_and_set_current(
        self, user_id: int, focus_id: uuid.UUID | None, expected_version: int | None
    ) -> bool:
        if expected_version is None:
            try:
                await self.db.execute(
                    insert(workspace_settings).values(
                        user_id=user_id, current_focus_id=focus_id, version=1
                    )
                )
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                return False
            return True

        result = await self.db.execute(
            update(workspace_settings)
            .where(
                workspace_settings.c.user_id == user_id,
                workspace_settings.c.version == expected_version,
            )
            .values(current_focus_id=focus_id, version=workspace_settings.c.version + 1)
        )
        await self.db.commit()
        return result.rowcount == 1

    @storage_call
    async def users_on_focus(self, focus_id: uuid.UUID) -> list[WorkspaceSettings]:
        result = await self.db.execute(
            _select(WorkspaceSettingsRecord).where(WorkspaceSettingsRecord.current_focus_id == focus_id)
        )
        return [WorkspaceSettings.model_validate(record) for record in result.scalars().all()]


class SqlLayoutStore(SqlStore):
    def _columns(self, target: LayoutTarget):
        """Return (table, where clause, document column, revision column) for a target."""
        if target.kind == LayoutTargetKind.focus:
            return focuses, (focuses.c.id == target.focus_id,), "layout_data", "layout_revision"
        if target.kind == LayoutTargetKind.local:
            return (
                workspace_settings,
                (workspace_settings.c.user_id == target.user_id,),
                "local_layout",
                "local_layout_revision",
            )
        return (
            focus_preferences,
            (
                focus_preferences.c.user_id == target.user_id,
                focus_preferences.c.focus_id == target.focus_id,
            ),
            "custom_layout",
            "layout_revision",
        )

    def _new_row(self, target: LayoutTarget, document: dict[str, Any]) -> dict[str, Any]:
        if target.kind == LayoutTargetKind.local:
            return {"user_id": target.user_id, "version": 0, "local_layout": document, "local_layout_revision": 1}
        return {
            "user_id": target.user_id,
            "focus_id": target.focus_id,
            "is_favorite": False,
            "custom_layout": document,
            "layout_revision": 1,
        }

    @storage_call
    async def read(self, target: LayoutTarget) -> StoredLayout | None:
        table, where, document_column, revision_column = self._columns(target)
        result = await self.db.execute(
            select(table.c[document_column], table.c[revision_column]).where(*where)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return StoredLayout(document=row[0], revision=row[1])

    @storage_call
    async def write(self, target: LayoutTarget, document: dict[str, Any]) -> int:
        table, where, document_column, revision_column = self._columns(target)
        # Single statement: document and revision change together
        replace = (
            update(table)
            .where(*where)
            .values({document_column: document, revision_column: table.c[revision_column] + 1})
            .returning(table.c[revision_column])
        )
        result = await self.db.execute(replace)
        revision = result.scalar_one_or_none()
        if revision is None:
            if target.kind == LayoutTargetKind.focus:
                await self.db.rollback()
                raise NotFoundError("Focus", target.focus_id)
            try:
                await self.db.execute(insert(table).values(**self._new_row(target, document)))
                revision = 1
            except IntegrityError:
                await self.db.rollback()
                result = await self.db.execute(replace)
                revision = result.scalar_one()
        await self.db.commit()
        return revision

    @storage_call
    async def clear(self, target: LayoutTarget) -> None:
        table, where, document_column, revision_column = self._columns(target)
        await self.db.execute(
            update(table)
            .where(*where)
            .values({document_column: None, revision_column: table.c[revision_column] + 1})
        )
        await self.db.commit()


def sql_stores(db: AsyncSession, timeout: float = 5.0) -> Stores:
    return Stores(
        users=SqlUserMappingStore(db, timeout),
        focuses=SqlFocusStore(db, timeout),
        preferences=SqlPreferenceStore(db, timeout),
        layouts=SqlLayoutStore(db, timeout),
    )

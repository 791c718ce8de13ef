import logging
import uuid
from dataclasses import dataclass
from typing import Any

from focusdesk.events import EventChannel, FocusCleared, FocusSelected
from focusdesk.exceptions import NotFoundError
from focusdesk.schemas.focus import Focus
from focusdesk.schemas.layout import LayoutState, LayoutTarget, LoadResult, WorkspaceSnapshot
from focusdesk.schemas.preference import UserFocusPreference
from focusdesk.schemas.user import InternalUser
from focusdesk.services.focus_service import FocusRegistry
from focusdesk.services.layout_service import LayoutPersistence
from focusdesk.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    focus: Focus
    layout: LoadResult
    notice: str | None = None


class WorkspaceService:
    """Operations behind the dashboard shell: selecting, saving and favoriting focuses."""

    def __init__(
        self,
        registry: FocusRegistry,
        preferences: PreferenceService,
        layouts: LayoutPersistence,
        events: EventChannel | None = None,
    ):
        self.registry = registry
        self.preferences = preferences
        self.layouts = layouts
        self.events = events

    async def select_focus(self, user: InternalUser, focus_id: uuid.UUID) -> Selection:
        focus = await self.registry.get_visible(focus_id, user.role)

        await self.preferences.set_current_focus(user.internal_user_id, focus.id)
        await self.preferences.record_last_used(user.internal_user_id, focus.id)

        layout, notice = await self._restore_for(user, focus)
        if self.events is not None:
            self.events.publish(FocusSelected(user_id=user.internal_user_id, focus_id=focus.id))
        return Selection(focus=focus, layout=layout, notice=notice)

    async def current_focus(self, user: InternalUser) -> Focus | None:
        focus_id = await self.preferences.get_current_focus_id(user.internal_user_id)
        if focus_id is None:
            return None
        try:
            focus = await self.registry.get_visible(focus_id, user.role)
        except NotFoundError:
            # Deleted, or the user's role changed since it was selected
            return None
        return focus

    async def clear_focus(self, user: InternalUser) -> None:
        previous = await self.preferences.get_current_focus_id(user.internal_user_id)
        await self.preferences.set_current_focus(user.internal_user_id, None)
        if self.events is not None:
            self.events.publish(FocusCleared(user_id=user.internal_user_id, previous_focus_id=previous))

    async def save_current_layout_to_focus(
        self, user: InternalUser, focus_id: uuid.UUID, snapshot: WorkspaceSnapshot | dict[str, Any]
    ) -> int:
        return await self.registry.save_layout(focus_id, snapshot, user.role)

    async def save_custom_layout(
        self, user: InternalUser, focus_id: uuid.UUID, snapshot: WorkspaceSnapshot | dict[str, Any]
    ) -> int:
        await self.registry.get_visible(focus_id, user.role)
        return await self.layouts.save(LayoutTarget.override(user.internal_user_id, focus_id), snapshot)

    async def clear_custom_layout(self, user: InternalUser, focus_id: uuid.UUID) -> None:
        await self.registry.get_visible(focus_id, user.role)
        await self.layouts.reset(LayoutTarget.override(user.internal_user_id, focus_id))

    async def toggle_favorite(self, user: InternalUser, focus_id: uuid.UUID) -> UserFocusPreference:
        await self.registry.get_visible(focus_id, user.role)
        return await self.preferences.toggle_favorite(user.internal_user_id, focus_id)

    async def is_favorite(self, user: InternalUser, focus_id: uuid.UUID) -> bool:
        return focus_id in await self.preferences.favorite_ids(user.internal_user_id)

    async def load_local_layout(self, user: InternalUser) -> tuple[LoadResult, str | None]:
        return await self.layouts.restore(LayoutTarget.local(user.internal_user_id))

    async def save_local_layout(self, user: InternalUser, snapshot: WorkspaceSnapshot | dict[str, Any]) -> int:
        return await self.layouts.save(LayoutTarget.local(user.internal_user_id), snapshot)

    async def reset_local_layout(self, user: InternalUser) -> None:
        await self.layouts.reset(LayoutTarget.local(user.internal_user_id))

    async def _restore_for(self, user: InternalUser, focus: Focus) -> tuple[LoadResult, str | None]:
        """The user's own override wins when it is usable; otherwise the focus layout."""
        target = LayoutTarget.override(user.internal_user_id, focus.id)
        override = await self.layouts.load(target)
        if override.is_valid:
            return override, None
        if override.state != LayoutState.absent:
            logger.warning("Ignoring %s override for %s", override.state, target)
        return await self.layouts.restore(LayoutTarget.for_focus(focus.id))

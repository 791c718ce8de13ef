import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from focusdesk.exceptions import StorageUnavailableError
from focusdesk.repositories.base import PreferenceStore
from focusdesk.schemas.preference import UserFocusPreference, WorkspaceSettings

logger = logging.getLogger(__name__)

# Compare-and-swap attempts before giving up on a contended settings row
MAX_SWAP_ATTEMPTS = 10

ChooseReplacement = Callable[[int], Awaitable[uuid.UUID | None]]


class PreferenceService:
    def __init__(self, preferences: PreferenceStore):
        self.preferences = preferences

    async def get_preference(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference:
        preference = await self.preferences.get_preference(user_id, focus_id)
        return preference or UserFocusPreference(user_id=user_id, focus_id=focus_id)

    async def toggle_favorite(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference:
        preference = await self.get_preference(user_id, focus_id)
        return await self.preferences.upsert_preference(
            preference.model_copy(update={"is_favorite": not preference.is_favorite})
        )

    async def record_last_used(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference:
        preference = await self.get_preference(user_id, focus_id)
        return await self.preferences.upsert_preference(
            preference.model_copy(update={"last_used_at": datetime.now(timezone.utc)})
        )

    async def favorite_ids(self, user_id: int) -> set[uuid.UUID]:
        return await self.preferences.favorite_ids(user_id)

    async def get_current_focus_id(self, user_id: int) -> uuid.UUID | None:
        settings = await self.preferences.get_settings(user_id)
        return settings.current_focus_id if settings else None

    async def set_current_focus(self, user_id: int, focus_id: uuid.UUID | None) -> None:
        for _ in range(MAX_SWAP_ATTEMPTS):
            settings = await self.preferences.get_settings(user_id)
            expected = settings.version if settings else None
            if await self.preferences.compare_and_set_current(user_id, focus_id, expected):
                return
        raise StorageUnavailableError(f"Current focus for user {user_id} is under contention")

    async def redirect_current(self, focus_id: uuid.UUID, choose: ChooseReplacement) -> int:
        """Move every user whose current focus is ``focus_id`` to ``choose(user_id)``.

        Returns the number of users redirected.
        """
        redirected = 0
        for settings in await self.preferences.users_on_focus(focus_id):
            if await self._redirect_user(settings, focus_id, choose):
                redirected += 1
        return redirected

    async def _redirect_user(
        self, settings: WorkspaceSettings | None, focus_id: uuid.UUID, choose: ChooseReplacement
    ) -> bool:
        for _ in range(MAX_SWAP_ATTEMPTS):
            if settings is None or settings.current_focus_id != focus_id:
                # The user already moved elsewhere
                return False
            replacement = await choose(settings.user_id)
            if await self.preferences.compare_and_set_current(
                settings.user_id, replacement, settings.version
            ):
                logger.info(
                    "Redirected user %s from focus %s to %s", settings.user_id, focus_id, replacement
                )
                return True
            settings = await self.preferences.get_settings(settings.user_id)
        raise StorageUnavailableError(f"Current focus for user {settings.user_id} is under contention")

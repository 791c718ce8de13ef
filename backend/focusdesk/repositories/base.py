import asyncio
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from focusdesk.exceptions import StorageUnavailableError
from focusdesk.schemas.focus import Focus
from focusdesk.schemas.layout import LayoutTarget, StoredLayout
from focusdesk.schemas.preference import UserFocusPreference, WorkspaceSettings
from focusdesk.schemas.user import InternalUser, Role, UserMapping

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOTSTRAP_ADMIN_SEQUENCE = "bootstrap_admin"
INTERNAL_USER_SEQUENCE = "internal_user_id"


def storage_call(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Bound a store method by ``self.timeout`` and map driver failures.

    Timeouts and connection-level errors surface as StorageUnavailableError;
    constraint violations and other errors propagate unchanged.
    """

    @functools.wraps(method)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        try:
            async with asyncio.timeout(self.timeout):
                return await method(self, *args, **kwargs)
        except TimeoutError as e:
            logger.warning("Storage call %s timed out after %ss", method.__name__, self.timeout)
            raise StorageUnavailableError(f"Storage call timed out after {self.timeout}s") from e
        except (OperationalError, InterfaceError, OSError) as e:
            logger.warning("Storage call %s failed: %s", method.__name__, e)
            raise StorageUnavailableError(str(e)) from e

    return wrapper


class UserMappingStore(Protocol):
    async def get_by_external_id(self, external_id: str) -> UserMapping | None: ...

    async def get_by_email(self, email: str) -> UserMapping | None: ...

    async def touch(self, internal_user_id: int, seen_at: datetime) -> None: ...

    async def attach_external_id(
        self, internal_user_id: int, external_id: str, seen_at: datetime
    ) -> UserMapping:
        """Re-key a mapping; raises MappingConflictError if the external id is taken."""
        ...

    async def allocate_internal_id(self, start: int) -> int: ...

    async def insert_if_absent(self, mapping: UserMapping, user: InternalUser) -> bool:
        """Insert mapping and user atomically; False when either key already exists."""
        ...

    async def claim_bootstrap_admin(self) -> bool: ...

    async def get_user(self, internal_user_id: int) -> InternalUser | None: ...

    async def set_role(self, internal_user_id: int, role: Role) -> InternalUser | None: ...

    async def list_users(self) -> list[tuple[UserMapping, InternalUser]]: ...

    async def ping(self) -> None: ...


class FocusStore(Protocol):
    async def get(self, focus_id: uuid.UUID) -> Focus | None: ...

    async def list_active(self) -> list[Focus]: ...

    async def insert(self, focus: Focus) -> Focus: ...

    async def save(self, focus: Focus) -> Focus:
        """Persist metadata fields; layout fields belong to LayoutStore."""
        ...


class PreferenceStore(Protocol):
    async def get_preference(self, user_id: int, focus_id: uuid.UUID) -> UserFocusPreference | None: ...

    async def upsert_preference(self, preference: UserFocusPreference) -> UserFocusPreference: ...

    async def favorite_ids(self, user_id: int) -> set[uuid.UUID]: ...

    async def get_settings(self, user_id: int) -> WorkspaceSettings | None: ...

    async def compare_and_set_current(
        self, user_id: int, focus_id: uuid.UUID | None, expected_version: int | None
    ) -> bool:
        """Swap current focus if the row is still at ``expected_version``.

        ``expected_version=None`` means the row must not exist yet.
        """
        ...

    async def users_on_focus(self, focus_id: uuid.UUID) -> list[WorkspaceSettings]: ...


class LayoutStore(Protocol):
    async def read(self, target: LayoutTarget) -> StoredLayout | None:
        """None when nothing was ever stored; a cleared document reads back with ``document=None``."""
        ...

    async def write(self, target: LayoutTarget, document: dict[str, Any]) -> int:
        """Replace the document in one write and return the new revision."""
        ...

    async def clear(self, target: LayoutTarget) -> None: ...


@dataclass
class Stores:
    users: UserMappingStore
    focuses: FocusStore
    preferences: PreferenceStore
    layouts: LayoutStore

import logging
from datetime import datetime, timezone

from focusdesk.config import Settings, get_settings
from focusdesk.exceptions import (
    FieldValidationError,
    MappingConflictError,
    NotFoundError,
    StorageUnavailableError,
    UnverifiedEmailError,
)
from focusdesk.repositories.base import UserMappingStore
from focusdesk.schemas.user import InternalUser, Role, UserListItem, UserMapping
from focusdesk.services import access_control
from focusdesk.services.retry import with_storage_retry

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityMappingService:
    def __init__(self, users: UserMappingStore, settings: Settings | None = None):
        self.users = users
        self.settings = settings or get_settings()

    async def get_or_create_internal_id(self, external_id: str, email: str) -> int:
        """Map an external identity to its internal user id, creating it on first contact.

        Lookup order is external id, then email. A known email with a new
        external id is a re-registration: the new external id is attached to
        the existing mapping instead of creating a second user.
        """
        mapping = await self._map(external_id, email)
        return mapping.internal_user_id

    async def resolve(self, external_id: str, email: str, allow_email_merge: bool = True) -> InternalUser:
        """Like get_or_create_internal_id, returning the user.

        With ``allow_email_merge`` off, a new external id whose email already
        belongs to another user raises UnverifiedEmailError instead of
        attaching to that user.
        """
        mapping = await self._map(external_id, email, allow_email_merge)
        return await self.get_user(mapping.internal_user_id)

    async def get_user(self, internal_user_id: int) -> InternalUser:
        user = await with_storage_retry(
            self.settings, lambda: self.users.get_user(internal_user_id), "user lookup"
        )
        if user is None:
            raise NotFoundError("User", internal_user_id)
        return user

    async def find_by_external_id(self, external_id: str) -> InternalUser | None:
        """Look up a known identity without creating one (used by token auth)."""

        async def lookup() -> InternalUser | None:
            mapping = await self.users.get_by_external_id(external_id)
            if mapping is None:
                return None
            return await self.users.get_user(mapping.internal_user_id)

        return await with_storage_retry(self.settings, lookup, "identity lookup")

    async def list_users(self, caller_role: Role) -> list[UserListItem]:
        access_control.require(access_control.can_mutate, "list users", caller_role)
        rows = await with_storage_retry(self.settings, self.users.list_users, "user listing")
        return [
            UserListItem(
                **user.model_dump(),
                external_id=mapping.external_id,
                last_seen_at=mapping.last_seen_at,
            )
            for mapping, user in rows
        ]

    async def update_role(self, internal_user_id: int, role: str, caller_role: Role) -> InternalUser:
        access_control.require(access_control.can_mutate, "change user roles", caller_role)
        new_role = access_control.parse_role(role)
        user = await with_storage_retry(
            self.settings, lambda: self.users.set_role(internal_user_id, new_role), "role update"
        )
        if user is None:
            raise NotFoundError("User", internal_user_id)
        logger.info("User %s role set to %s", internal_user_id, new_role)
        return user

    async def _map(self, external_id: str, email: str, allow_email_merge: bool = True) -> UserMapping:
        external_id = external_id.strip()
        email = normalize_email(email)
        if not external_id:
            raise FieldValidationError("external_id", "must not be empty")
        if not email:
            raise FieldValidationError("email", "must not be empty")

        return await with_storage_retry(
            self.settings,
            lambda: self._map_with_conflict_retry(external_id, email, allow_email_merge),
            "identity mapping",
        )

    async def _map_with_conflict_retry(self, external_id: str, email: str, allow_email_merge: bool) -> UserMapping:
        for attempt in range(self.settings.mapping_max_attempts):
            try:
                return await self._map_once(external_id, email, allow_email_merge)
            except MappingConflictError:
                # Another request claimed the identity first; the next pass reads its row
                logger.warning(
                    "Mapping conflict for %s (attempt %d/%d)",
                    external_id,
                    attempt + 1,
                    self.settings.mapping_max_attempts,
                )

        mapping = await self.users.get_by_external_id(external_id)
        if mapping is None and allow_email_merge:
            mapping = await self.users.get_by_email(email)
        if mapping is None:
            raise StorageUnavailableError(f"Could not settle identity mapping for {external_id}")
        return mapping

    async def _map_once(self, external_id: str, email: str, allow_email_merge: bool) -> UserMapping:
        now = datetime.now(timezone.utc)

        mapping = await self.users.get_by_external_id(external_id)
        if mapping is not None:
            await self.users.touch(mapping.internal_user_id, now)
            return mapping.model_copy(update={"last_seen_at": now})

        # Same email under a new external id: the user re-registered or the
        # auth provider changed. The email is the stable identifier.
        mapping = await self.users.get_by_email(email)
        if mapping is not None:
            if not allow_email_merge:
                logger.warning(
                    "Refusing to attach external id %s to user %s: email not verified",
                    external_id,
                    mapping.internal_user_id,
                )
                raise UnverifiedEmailError(email)
            logger.info(
                "Attaching external id %s to existing user %s", external_id, mapping.internal_user_id
            )
            return await self.users.attach_external_id(mapping.internal_user_id, external_id, now)

        internal_user_id = await self.users.allocate_internal_id(self.settings.internal_user_id_offset)
        mapping = UserMapping(
            internal_user_id=internal_user_id,
            external_id=external_id,
            email=email,
            created_at=now,
            last_seen_at=now,
        )
        user = InternalUser(internal_user_id=internal_user_id, email=email, role=Role.user, created_at=now)
        if not await self.users.insert_if_absent(mapping, user):
            # The allocated id is discarded; gaps in the sequence are fine
            raise MappingConflictError(external_id)

        logger.info("Created user %s for external id %s", internal_user_id, external_id)
        if await self.users.claim_bootstrap_admin():
            await self.users.set_role(internal_user_id, Role.admin)
            logger.info("Granted admin role to first user %s", internal_user_id)
        return mapping

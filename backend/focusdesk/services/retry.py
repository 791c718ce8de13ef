import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from focusdesk.config import Settings
from focusdesk.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_storage_retry(
    settings: Settings, operation: Callable[[], Awaitable[T]], description: str
) -> T:
    """Run ``operation``, retrying StorageUnavailableError up to storage_max_retries times."""
    attempts = settings.storage_max_retries + 1
    last_error: StorageUnavailableError | None = None

    for attempt in range(attempts):
        try:
            return await operation()
        except StorageUnavailableError as e:
            last_error = e
            logger.warning("Storage unavailable during %s (attempt %d/%d): %s", description, attempt + 1, attempts, e)
            if attempt < attempts - 1 and settings.storage_retry_backoff_seconds:
                await asyncio.sleep(settings.storage_retry_backoff_seconds * (attempt + 1))

    raise StorageUnavailableError(f"Storage unavailable during {description} after {attempts} attempts") from last_error

"""Validation, save and restore of workspace layout documents.

A stored document is only ever applied whole. Anything that fails structural
validation, or was written under a different schema version, is replaced by
a freshly synthesized default and the discard is reported to the user.
"""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from focusdesk.config import Settings, get_settings
from focusdesk.events import EventChannel, LayoutDiscarded
from focusdesk.exceptions import FieldValidationError
from focusdesk.repositories.base import LayoutStore
from focusdesk.schemas.layout import (
    LayoutResponse,
    LayoutState,
    LayoutTarget,
    LoadResult,
    WorkspaceSnapshot,
)

logger = logging.getLogger(__name__)

RESTORE_NOTICE = "Saved layout could not be restored; started fresh."

WELCOME_PANEL_ID = "welcome"


def inspect_document(document: Any, expected_version: int) -> tuple[LayoutState, WorkspaceSnapshot | None]:
    """Classify a stored document without raising."""
    if document is None:
        return LayoutState.absent, None
    if not isinstance(document, dict):
        return LayoutState.corrupt, None

    version = document.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        return LayoutState.corrupt, None

    try:
        snapshot = WorkspaceSnapshot.model_validate(document)
    except ValidationError:
        return LayoutState.corrupt, None

    if version != expected_version:
        return LayoutState.version_mismatch, None
    return LayoutState.valid, snapshot


def validate_document(document: Any, expected_version: int) -> LayoutState:
    state, _ = inspect_document(document, expected_version)
    return state


def parse_snapshot(payload: Any, field: str = "layout") -> WorkspaceSnapshot:
    """Validate an incoming snapshot before it is saved."""
    if isinstance(payload, WorkspaceSnapshot):
        return payload
    if not isinstance(payload, dict):
        raise FieldValidationError(field, "must be an object")
    try:
        return WorkspaceSnapshot.model_validate(payload)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise FieldValidationError(f"{field}.{location}" if location else field, error["msg"]) from e


class LayoutPersistence:
    def __init__(
        self,
        layouts: LayoutStore,
        settings: Settings | None = None,
        events: EventChannel | None = None,
    ):
        self.layouts = layouts
        self.settings = settings or get_settings()
        self.events = events

    @property
    def schema_version(self) -> int:
        return self.settings.layout_schema_version

    def validate(self, document: Any) -> LayoutState:
        return validate_document(document, self.schema_version)

    def default_snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot.model_validate(
            {
                "version": self.schema_version,
                "panelDocument": {
                    "panels": {
                        WELCOME_PANEL_ID: {
                            "id": WELCOME_PANEL_ID,
                            "contentComponent": "welcome",
                            "title": "Welcome Panel",
                        }
                    },
                    "grid": {
                        "root": {
                            "type": "branch",
                            "data": [
                                {
                                    "type": "leaf",
                                    "data": {
                                        "id": "1",
                                        "views": [WELCOME_PANEL_ID],
                                        "activeView": WELCOME_PANEL_ID,
                                    },
                                }
                            ],
                        },
                        "orientation": "HORIZONTAL",
                    },
                },
                "sidebar": {"collapsed": False, "width": self.settings.default_sidebar_width},
                "globalFilters": {"ship": "", "dateFrom": "", "dateTo": ""},
                "appearance": {
                    "theme": "default",
                    "fontSize": 12,
                    "fontFamily": "Inter",
                    "spacingMode": "default",
                },
            }
        )

    async def save(self, target: LayoutTarget, snapshot: WorkspaceSnapshot | dict[str, Any]) -> int:
        """Write the snapshot stamped with the current schema version; returns the new revision."""
        snapshot = parse_snapshot(snapshot)
        revision = await self.layouts.write(target, snapshot.to_document(self.schema_version))
        logger.info("Saved layout for %s at revision %d", target, revision)
        return revision

    async def load(self, target: LayoutTarget) -> LoadResult:
        stored = await self.layouts.read(target)
        if stored is None:
            return LoadResult(state=LayoutState.absent, target=target)
        if stored.document is None:
            # Reset: nothing to restore, but the revision still orders it
            return LoadResult(state=LayoutState.absent, target=target, revision=stored.revision)

        state, snapshot = inspect_document(stored.document, self.schema_version)
        found_version = stored.document.get("version") if isinstance(stored.document, dict) else None
        return LoadResult(
            state=state,
            target=target,
            snapshot=snapshot,
            revision=stored.revision,
            found_version=found_version,
        )

    async def restore(self, target: LayoutTarget) -> tuple[LoadResult, str | None]:
        """Load a layout, substituting the default for anything that is not valid.

        Returns the result and the notice to show, if any. The stored
        document is left in place; the next save replaces it.
        """
        result = await self.load(target)
        if result.is_valid:
            return result, None

        fallback = LoadResult(
            state=result.state,
            target=target,
            snapshot=self.default_snapshot(),
            revision=result.revision,
            found_version=result.found_version,
            fallback=True,
        )
        if result.state == LayoutState.absent:
            return fallback, None

        logger.warning("Layout for %s is %s; using default", target, result.state)
        if self.events is not None:
            self.events.publish(
                LayoutDiscarded(
                    target=target.key,
                    state=result.state.value,
                    found_version=result.found_version,
                    notice=RESTORE_NOTICE,
                )
            )
        return fallback, RESTORE_NOTICE

    async def reset(self, target: LayoutTarget) -> None:
        await self.layouts.clear(target)
        logger.info("Reset layout for %s", target)

    def to_response(self, result: LoadResult, notice: str | None = None) -> LayoutResponse:
        snapshot = result.snapshot or self.default_snapshot()
        return LayoutResponse(
            state=result.state,
            revision=result.revision,
            layout=snapshot.to_document(self.schema_version),
            restored=not result.fallback,
            notice=notice,
        )


class WorkspaceState:
    """The applied snapshot for one target plus the last revision seen.

    This is the holder a client session keeps between requests; the HTTP
    layer is stateless and hands out revisions with every layout response.
    Loads may complete out of order; a result older than what is already
    applied is ignored. A reset advances the revision, so refreshing after
    one applies the default layout.
    """

    def __init__(self, persistence: LayoutPersistence, target: LayoutTarget, timeout: float | None = None):
        self.persistence = persistence
        self.target = target
        self.timeout = timeout if timeout is not None else persistence.settings.storage_timeout_seconds
        self.snapshot: WorkspaceSnapshot | None = None
        self.revision = 0
        self.notice: str | None = None

    def apply(self, result: LoadResult, notice: str | None = None) -> bool:
        if result.revision < self.revision:
            logger.info(
                "Ignoring stale layout for %s (revision %d < %d)", self.target, result.revision, self.revision
            )
            return False
        self.snapshot = result.snapshot
        self.revision = result.revision
        self.notice = notice
        return True

    async def refresh(self) -> bool:
        """Reload from storage; state is only touched after the load finishes."""
        async with asyncio.timeout(self.timeout):
            result, notice = await self.persistence.restore(self.target)
        return self.apply(result, notice)

    async def save(self, snapshot: WorkspaceSnapshot | dict[str, Any]) -> int:
        snapshot = parse_snapshot(snapshot)
        revision = await self.persistence.save(self.target, snapshot)
        if revision >= self.revision:
            self.snapshot = snapshot.model_copy(update={"version": self.persistence.schema_version})
            self.revision = revision
            self.notice = None
        return revision

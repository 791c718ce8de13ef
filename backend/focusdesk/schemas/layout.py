import enum
import uuid
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr
from pydantic.alias_generators import to_camel

from focusdesk.exceptions import CorruptLayoutError, LayoutVersionMismatchError


class LayoutModel(BaseModel):
    # Documents are produced by the panel engine; keys it adds are kept verbatim.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class LeafData(LayoutModel):
    id: StrictStr
    views: list[Any] = Field(min_length=1)


class LeafNode(LayoutModel):
    type: Literal["leaf"]
    data: LeafData


class BranchNode(LayoutModel):
    type: Literal["branch"]
    data: list["LayoutNode"]


LayoutNode = Annotated[Union[LeafNode, BranchNode], Field(discriminator="type")]

BranchNode.model_rebuild()


class GridDocument(LayoutModel):
    root: LayoutNode


class PanelDocument(LayoutModel):
    panels: dict[StrictStr, Any]
    grid: GridDocument


class SidebarState(LayoutModel):
    collapsed: StrictBool = False
    width: StrictInt = Field(default=280, ge=0)


class Appearance(LayoutModel):
    theme: StrictStr = "default"
    font_size: StrictInt = Field(default=12, gt=0)
    font_family: StrictStr = "Inter"
    spacing_mode: StrictStr = "default"


class WorkspaceSnapshot(LayoutModel):
    """Panel arrangement plus the sidebar, filter and appearance settings."""

    version: StrictInt | None = None
    panel_document: PanelDocument
    sidebar: SidebarState = Field(default_factory=SidebarState)
    global_filters: dict[StrictStr, StrictStr] = Field(default_factory=dict)
    appearance: Appearance = Field(default_factory=Appearance)

    def to_document(self, version: int) -> dict[str, Any]:
        document = self.model_dump(mode="json", by_alias=True)
        document["version"] = version
        return document


class LayoutState(enum.StrEnum):
    absent = "absent"
    valid = "valid"
    version_mismatch = "version_mismatch"
    corrupt = "corrupt"


class LayoutTargetKind(enum.StrEnum):
    focus = "focus"
    local = "local"
    override = "override"


@dataclass(frozen=True)
class LayoutTarget:
    kind: LayoutTargetKind
    focus_id: uuid.UUID | None = None
    user_id: int | None = None

    @classmethod
    def for_focus(cls, focus_id: uuid.UUID) -> "LayoutTarget":
        return cls(LayoutTargetKind.focus, focus_id=focus_id)

    @classmethod
    def local(cls, user_id: int) -> "LayoutTarget":
        return cls(LayoutTargetKind.local, user_id=user_id)

    @classmethod
    def override(cls, user_id: int, focus_id: uuid.UUID) -> "LayoutTarget":
        return cls(LayoutTargetKind.override, focus_id=focus_id, user_id=user_id)

    @property
    def key(self) -> str:
        if self.kind == LayoutTargetKind.focus:
            return f"focus:{self.focus_id}"
        if self.kind == LayoutTargetKind.local:
            return f"local:{self.user_id}"
        return f"override:{self.user_id}:{self.focus_id}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class StoredLayout:
    document: Any
    revision: int


@dataclass(frozen=True)
class LoadResult:
    state: LayoutState
    target: LayoutTarget
    snapshot: WorkspaceSnapshot | None = None
    revision: int = 0
    found_version: Any = None
    # True when ``snapshot`` is a synthesized default standing in for a non-valid document
    fallback: bool = False

    @property
    def is_valid(self) -> bool:
        return self.state == LayoutState.valid

    def unwrap(self, expected_version: int) -> WorkspaceSnapshot:
        if self.state == LayoutState.corrupt:
            raise CorruptLayoutError(self.target.key)
        if self.state == LayoutState.version_mismatch:
            raise LayoutVersionMismatchError(self.target.key, self.found_version, expected_version)
        if self.snapshot is None:
            raise CorruptLayoutError(self.target.key)
        return self.snapshot


class LayoutResponse(BaseModel):
    state: LayoutState
    revision: int
    layout: dict[str, Any]
    restored: bool = Field(description="False when a default layout was synthesized")
    notice: str | None = None


class LayoutSaveResponse(BaseModel):
    revision: int
    version: int

"""Canonical data contracts for job graphs, overrides and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional, Tuple, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

from utils.exceptions import JobClientError


NodeId = str


class NodeRef(NamedTuple):
    """Connection to another node's output slot."""

    node_id: NodeId
    output_slot: int


def is_node_ref(value: Any) -> bool:
    """A two-element ``[node_id, slot]`` input is a connection, not a value."""
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and isinstance(value[0], str)
        and isinstance(value[1], int)
        and not isinstance(value[1], bool)
    )


class NodeSpec(BaseModel):
    """One node of a job graph, in the server's API format."""

    class_type: str
    inputs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("class_type", mode="before")
    @classmethod
    def _non_empty_kind(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("class_type must be a non-empty string")
        return value

    @field_validator("inputs", mode="before")
    @classmethod
    def _inputs_object(cls, value: Any) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("inputs must be an object")
        return value


class JobGraph(RootModel[Dict[NodeId, NodeSpec]]):
    """Declarative job graph: node id -> node spec."""

    @model_validator(mode="after")
    def _non_empty(self) -> "JobGraph":
        if not self.root:
            raise ValueError("workflow must contain at least one node")
        return self

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.root

    def __getitem__(self, node_id: NodeId) -> NodeSpec:
        return self.root[node_id]

    def __len__(self) -> int:
        return len(self.root)

    @property
    def node_ids(self) -> List[NodeId]:
        return list(self.root.keys())

    def items(self):
        return self.root.items()

    def clone(self) -> "JobGraph":
        return self.model_copy(deep=True)

    def to_wire(self) -> Dict[str, Dict[str, Any]]:
        return {
            node_id: {"inputs": dict(node.inputs), "class_type": node.class_type}
            for node_id, node in self.root.items()
        }


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    payload: Optional[str] = None


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    payload: Optional[Union[int, float]] = None


class BooleanValue(BaseModel):
    kind: Literal["boolean"] = "boolean"
    payload: Any = None


class ImageUrlValue(BaseModel):
    kind: Literal["image_url"] = "image_url"
    url: str = ""


class ImageBinaryValue(BaseModel):
    kind: Literal["image_binary"] = "image_binary"
    key: str = "data"


class BulkValue(BaseModel):
    """Whole ``key -> value`` object merged into a node's inputs."""

    kind: Literal["bulk"] = "bulk"
    payload: Union[str, Dict[str, Any]]


OverrideValue = Annotated[
    Union[TextValue, NumberValue, BooleanValue, ImageUrlValue, ImageBinaryValue, BulkValue],
    Field(discriminator="kind"),
]

ImageSource = Union[ImageUrlValue, ImageBinaryValue]

_VALUE_TYPES = {
    "text": "text",
    "number": "number",
    "boolean": "boolean",
    "image_url": "image",
    "image_binary": "image",
    "bulk": "bulk",
}


class ParameterOverride(BaseModel):
    """Typed mutation of one node input (or a bulk merge into a node)."""

    node_id: NodeId
    path: str = ""
    value: OverrideValue

    @model_validator(mode="after")
    def _path_required(self) -> "ParameterOverride":
        if self.value.kind != "bulk" and not self.path.strip():
            raise ValueError("path is required for single-parameter overrides")
        return self

    @property
    def type(self) -> str:
        return _VALUE_TYPES[self.value.kind]

    @classmethod
    def text(cls, node_id: NodeId, path: str, value: Optional[str]) -> "ParameterOverride":
        return cls(node_id=node_id, path=path, value=TextValue(payload=value))

    @classmethod
    def number(cls, node_id: NodeId, path: str, value: Optional[Union[int, float]]) -> "ParameterOverride":
        return cls(node_id=node_id, path=path, value=NumberValue(payload=value))

    @classmethod
    def boolean(cls, node_id: NodeId, path: str, value: Any) -> "ParameterOverride":
        return cls(node_id=node_id, path=path, value=BooleanValue(payload=value))

    @classmethod
    def image_url(cls, node_id: NodeId, path: str, url: str) -> "ParameterOverride":
        return cls(node_id=node_id, path=path, value=ImageUrlValue(url=url))

    @classmethod
    def image_binary(cls, node_id: NodeId, path: str, key: str = "data") -> "ParameterOverride":
        return cls(node_id=node_id, path=path, value=ImageBinaryValue(key=key))

    @classmethod
    def bulk(cls, node_id: NodeId, payload: Union[str, Dict[str, Any]]) -> "ParameterOverride":
        return cls(node_id=node_id, value=BulkValue(payload=payload))


# ---------------------------------------------------------------------------
# Host input items
# ---------------------------------------------------------------------------


@dataclass
class BinaryPayload:
    """Named inline binary carried by an input item (base64 text)."""

    data: Any
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


@dataclass
class InputItem:
    json: Dict[str, Any] = field(default_factory=dict)
    binary: Dict[str, BinaryPayload] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ClientState(str, Enum):
    """Client request lifecycle."""

    IDLE = "idle"
    REQUESTING = "requesting"
    DESTROYED = "destroyed"


class ArtifactKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


def build_locator(filename: str, subfolder: str, folder_type: str) -> str:
    return "/view?" + urlencode({"filename": filename, "subfolder": subfolder, "type": folder_type})


class ArtifactRef(BaseModel):
    """Reference to one produced file on the server."""

    model_config = ConfigDict(frozen=True)

    filename: str
    subfolder: str = ""
    folder_type: str = "output"
    kind: ArtifactKind = ArtifactKind.IMAGE
    locator: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_locator(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("locator"):
            data = dict(data)
            data["locator"] = build_locator(
                str(data.get("filename") or ""),
                str(data.get("subfolder") or ""),
                str(data.get("folder_type") or "output"),
            )
        return data


@dataclass(frozen=True)
class JobExecutionResult:
    """Outcome of one submitted job."""

    success: bool
    artifacts: Tuple[ArtifactRef, ...] = ()
    raw_output: Optional[Dict[str, Any]] = None
    error: Optional[JobClientError] = None
    job_id: Optional[str] = None

    @classmethod
    def failure(cls, error: JobClientError, job_id: Optional[str] = None) -> "JobExecutionResult":
        return cls(success=False, error=error, job_id=job_id)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @property
    def images(self) -> List[ArtifactRef]:
        return [ref for ref in self.artifacts if ref.kind == ArtifactKind.IMAGE]

    @property
    def videos(self) -> List[ArtifactRef]:
        return [ref for ref in self.artifacts if ref.kind == ArtifactKind.VIDEO]


@dataclass
class DownloadedArtifact:
    """Artifact bytes in transport-ready (base64) form."""

    ref: ArtifactRef
    file_name: str
    mime_type: str
    data: str
    size: int


@dataclass
class ProcessedOutput:
    """JSON summary plus binary entries keyed by output name."""

    json: Dict[str, Any]
    binary: Dict[str, Dict[str, Any]]

"""Core contracts and structural validation."""

from .contracts import (
    ArtifactKind,
    ArtifactRef,
    BinaryPayload,
    BooleanValue,
    BulkValue,
    ClientState,
    DownloadedArtifact,
    ImageBinaryValue,
    ImageSource,
    ImageUrlValue,
    InputItem,
    JobExecutionResult,
    JobGraph,
    NodeRef,
    NodeSpec,
    NumberValue,
    ParameterOverride,
    ProcessedOutput,
    TextValue,
    is_node_ref,
)

__all__ = [
    "ArtifactKind",
    "ArtifactRef",
    "BinaryPayload",
    "BooleanValue",
    "BulkValue",
    "ClientState",
    "DownloadedArtifact",
    "ImageBinaryValue",
    "ImageSource",
    "ImageUrlValue",
    "InputItem",
    "JobExecutionResult",
    "JobGraph",
    "NodeRef",
    "NodeSpec",
    "NumberValue",
    "ParameterOverride",
    "ProcessedOutput",
    "TextValue",
    "is_node_ref",
]

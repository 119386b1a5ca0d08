"""Structural validation for workflow documents, URLs and output keys."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Union
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from storage.cache import MemoryCache
from utils.exceptions import ValidationError

from .contracts import JobGraph


MAX_JSON_SIZE = 1 * 1024 * 1024
MAX_JSON_DEPTH = 100
MAX_JSON_NODES = 10000

DEFAULT_OUTPUT_BINARY_KEY = "data"
MAX_OUTPUT_KEY_LENGTH = 100
_OUTPUT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_url_cache = MemoryCache(ttl=300.0, max_size=100)


def object_depth(value: Any, max_depth: int = MAX_JSON_DEPTH, max_nodes: int = MAX_JSON_NODES) -> int:
    """Nesting depth of a parsed JSON value, walked iteratively."""
    if not isinstance(value, (dict, list)):
        return 1

    stack = [(value, 1)]
    deepest = 1
    visited_nodes = 0
    while stack:
        current, depth = stack.pop()
        visited_nodes += 1
        if visited_nodes > max_nodes:
            return deepest
        deepest = max(deepest, depth)
        if deepest > max_depth:
            return deepest
        if isinstance(current, dict):
            children = current.values()
        elif isinstance(current, list):
            children = current
        else:
            continue
        for child in children:
            stack.append((child, depth + 1))
    return deepest


def safe_json_parse(text: str, context: str = "JSON") -> Any:
    """
    Parse JSON text with size and depth ceilings

    Raises:
        ValidationError: empty, oversized, malformed or too deeply nested input
    """
    if not isinstance(text, str):
        raise ValidationError(f"{context} must be a string")
    if not text:
        raise ValidationError(f"{context} is empty")
    if len(text) > MAX_JSON_SIZE:
        raise ValidationError(
            f"{context} exceeds maximum size of {MAX_JSON_SIZE // 1024 // 1024}MB "
            f"(actual: {len(text) / 1024 / 1024:.2f}MB)"
        )

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{context} is invalid: {exc}") from exc

    depth = object_depth(parsed)
    if depth > MAX_JSON_DEPTH:
        raise ValidationError(f"{context} exceeds maximum depth of {MAX_JSON_DEPTH} (actual: {depth})")
    return parsed


def _check_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_url(url: Any) -> bool:
    """True for parseable http/https URLs with a host."""
    if not isinstance(url, str) or not url.strip():
        return False
    return _url_cache.get_or_set(url, lambda: _check_url(url))


def validate_workflow(workflow: Union[str, Dict[str, Any]]) -> JobGraph:
    """
    Validate an API-format workflow document and build a JobGraph

    Args:
        workflow: JSON text or already parsed mapping

    Returns:
        JobGraph

    Raises:
        ValidationError: naming the first offending node
    """
    if isinstance(workflow, str):
        if not workflow.strip():
            raise ValidationError("Workflow JSON is empty")
        workflow = safe_json_parse(workflow, "Workflow JSON")

    if not isinstance(workflow, dict):
        raise ValidationError("Workflow must be an object with node IDs as keys")
    if not workflow:
        raise ValidationError("Workflow must contain at least one node")

    for node_id, node in workflow.items():
        if not isinstance(node, dict):
            raise ValidationError(f"Node {node_id} must be an object")
        class_type = node.get("class_type")
        if not isinstance(class_type, str) or not class_type:
            raise ValidationError(f"Node {node_id} must have a class_type property")
        inputs = node.get("inputs")
        if inputs is not None and not isinstance(inputs, dict):
            raise ValidationError(f"Node {node_id} inputs must be an object")

    try:
        return JobGraph.model_validate(workflow)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid workflow: {exc.errors()[0].get('msg', exc)}") from exc


def validate_output_binary_key(key: Any) -> str:
    """Normalize the binary key used for the first output file."""
    if not key or not isinstance(key, str):
        return DEFAULT_OUTPUT_BINARY_KEY
    trimmed = key.strip()
    if not trimmed:
        return DEFAULT_OUTPUT_BINARY_KEY
    if not _OUTPUT_KEY_PATTERN.match(trimmed):
        raise ValidationError("Output Binary Key can only contain letters, numbers, underscores, and hyphens")
    if len(trimmed) > MAX_OUTPUT_KEY_LENGTH:
        raise ValidationError(
            f"Output Binary Key is too long (max {MAX_OUTPUT_KEY_LENGTH} characters, got {len(trimmed)})"
        )
    return trimmed

"""Value normalization and input-path helpers for parameter overrides."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from core.contracts import is_node_ref
from utils.exceptions import InvalidOverrideTypeError, ValidationError


logger = logging.getLogger(__name__)

Number = Union[int, float]

_PRIMITIVES = (str, int, float, bool, type(None))


def normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def normalize_number(value: Optional[Number]) -> Number:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Expected a number, got {type(value).__name__}")
    return value


def normalize_boolean(value: Any) -> bool:
    """Only ``True`` and the exact string ``"true"`` are true."""
    return value is True or value == "true"


def _check_bulk_value(value: Any, key: str) -> None:
    if isinstance(value, _PRIMITIVES):
        return
    if isinstance(value, list):
        for item in value:
            _check_bulk_value(item, key)
        return
    if isinstance(value, dict):
        for child_key, child in value.items():
            if not isinstance(child_key, str):
                raise InvalidOverrideTypeError(
                    f'Parameter "{key}" has a non-string key {child_key!r}', key=key
                )
            _check_bulk_value(child, key)
        return
    raise InvalidOverrideTypeError(
        f'Parameter "{key}" has unsupported type {type(value).__name__}. '
        "Only strings, numbers, booleans, null, arrays and objects can be sent to the server.",
        key=key,
    )


def validate_bulk_values(node_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check every value of a bulk override is JSON-representable

    Args:
        node_id: Target node, used in messages
        values: Mapping merged into the node's inputs

    Returns:
        The same mapping

    Raises:
        ValidationError: ``values`` is not an object
        InvalidOverrideTypeError: a value (or nested value) is not a primitive
    """
    if not isinstance(values, dict):
        raise ValidationError(f"Parameters for node {node_id} must be a JSON object")

    for key, value in values.items():
        _check_bulk_value(value, str(key))
        if isinstance(value, dict):
            logger.warning(
                f'Parameter "{key}" of node {node_id} is a nested object; '
                "the server may not accept it as a node input"
            )
    return values


def split_path(path: str) -> List[str]:
    segments = [segment.strip() for segment in str(path or "").split(".")]
    if not segments or any(not segment for segment in segments):
        raise ValidationError(f'Invalid parameter path "{path}"')
    return segments


def _step(container: Any, segment: str, path: str) -> Tuple[Any, Union[str, int]]:
    if isinstance(container, dict):
        return container, segment
    if isinstance(container, list):
        try:
            index = int(segment)
        except ValueError:
            raise ValidationError(f'Path "{path}": segment "{segment}" must be a list index') from None
        if not -len(container) <= index < len(container):
            raise ValidationError(f'Path "{path}": index {index} is out of range')
        return container, index
    raise ValidationError(f'Path "{path}": segment "{segment}" does not address a container')


def resolve_parent(inputs: Dict[str, Any], path: str) -> Tuple[Any, Union[str, int]]:
    """
    Walk ``path`` down to the container holding its last segment.

    Intermediate segments must already exist as objects or lists; only the
    final key of an object may be new. Connection pairs are never entered.
    """
    segments = split_path(path)
    container: Any = inputs
    walked: List[str] = []
    for segment in segments[:-1]:
        parent, key = _step(container, segment, path)
        if isinstance(parent, dict) and key not in parent:
            raise ValidationError(f'Path "{path}": "{segment}" does not exist')
        container = parent[key]
        walked.append(segment)
        if is_node_ref(container):
            raise ValidationError(
                f'Path "{path}": "{".".join(walked)}" is connected to node {container[0]} '
                f"(output {container[1]}) and cannot be overridden with a value"
            )
    return _step(container, segments[-1], path)


def set_input(inputs: Dict[str, Any], path: str, value: Any, *, node_id: str = "") -> None:
    """Store ``value`` at ``path``; connections to other nodes are never replaced."""
    parent, key = resolve_parent(inputs, path)
    current = parent.get(key) if isinstance(parent, dict) else parent[key]
    if is_node_ref(current):
        raise ValidationError(
            f'Input "{path}" of node {node_id} is connected to node {current[0]} '
            f"(output {current[1]}) and cannot be overridden with a value"
        )
    parent[key] = value


def get_input(inputs: Dict[str, Any], path: str) -> Any:
    parent, key = resolve_parent(inputs, path)
    if isinstance(parent, dict):
        return parent.get(key)
    return parent[key]

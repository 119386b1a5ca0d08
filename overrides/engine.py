"""Apply typed parameter overrides to a job graph."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from core.contracts import (
    BooleanValue,
    BulkValue,
    ImageBinaryValue,
    ImageUrlValue,
    InputItem,
    JobGraph,
    NumberValue,
    ParameterOverride,
    TextValue,
    is_node_ref,
)
from core.validation import safe_json_parse
from utils.exceptions import ConfigurationError, UnknownNodeError, ValidationError

from .ingest import AssetIngestor
from .values import (
    normalize_boolean,
    normalize_number,
    normalize_text,
    set_input,
    validate_bulk_values,
)


logger = logging.getLogger(__name__)

OverrideLike = Union[ParameterOverride, Dict[str, Any]]


class ParameterOverrideEngine:
    """
    Produces a modified copy of a job graph; the input graph is never touched.

    Overrides run in list order and a later override of the same input wins.
    Image overrides are resolved through the ``AssetIngestor`` and store the
    server-side file name it returns.
    """

    def __init__(self, ingestor: Optional[AssetIngestor] = None) -> None:
        self.ingestor = ingestor

    @staticmethod
    def _coerce(override: OverrideLike, index: int) -> ParameterOverride:
        if isinstance(override, ParameterOverride):
            return override
        try:
            return ParameterOverride.model_validate(override)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Node Parameters {index + 1}: invalid override: {exc.errors()[0].get('msg', exc)}"
            ) from exc

    async def apply(
        self,
        graph: JobGraph,
        overrides: Iterable[OverrideLike],
        items: Optional[Sequence[InputItem]] = None,
    ) -> JobGraph:
        result = graph.clone()
        overrides = list(overrides)
        if not overrides:
            return result

        logger.debug(f"Applying {len(overrides)} parameter overrides")
        for index, raw in enumerate(overrides):
            override = self._coerce(raw, index)
            await self._apply_one(result, override, items)
        return result

    async def _apply_one(
        self,
        graph: JobGraph,
        override: ParameterOverride,
        items: Optional[Sequence[InputItem]],
    ) -> None:
        node_id = override.node_id
        if node_id not in graph:
            raise UnknownNodeError(node_id)

        node = graph[node_id]
        if node.inputs is None:
            node.inputs = {}

        value = override.value
        if isinstance(value, BulkValue):
            self._merge_bulk(node_id, node.inputs, value.payload)
            return

        if isinstance(value, TextValue):
            resolved: Any = normalize_text(value.payload)
        elif isinstance(value, NumberValue):
            resolved = normalize_number(value.payload)
        elif isinstance(value, BooleanValue):
            resolved = normalize_boolean(value.payload)
        elif isinstance(value, (ImageUrlValue, ImageBinaryValue)):
            if self.ingestor is None:
                raise ConfigurationError(
                    f"Image override for node {node_id} needs an asset ingestor"
                )
            ingested = await self.ingestor.ingest(value, items)
            resolved = ingested.filename
        else:
            raise ValidationError(f"Unknown override kind for node {node_id}: {value.kind}")

        set_input(node.inputs, override.path, resolved, node_id=node_id)
        logger.debug(f"Set {node_id}.{override.path} ({override.type})")

    @staticmethod
    def _merge_bulk(node_id: str, inputs: Dict[str, Any], payload: Union[str, Dict[str, Any]]) -> None:
        if isinstance(payload, str):
            payload = safe_json_parse(payload, f"Parameters JSON for node {node_id}")
        values = validate_bulk_values(node_id, payload)

        connected: List[str] = [key for key in values if is_node_ref(inputs.get(key))]
        if connected:
            raise ValidationError(
                f"Node {node_id}: inputs {', '.join(connected)} are connected to other nodes "
                "and cannot be overridden with values"
            )
        inputs.update(values)
        logger.debug(f"Merged {len(values)} parameters into node {node_id}")

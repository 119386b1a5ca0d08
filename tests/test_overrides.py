from __future__ import annotations

import logging

import pytest

from core import JobGraph, ParameterOverride
from overrides import ParameterOverrideEngine, normalize_boolean, normalize_number, normalize_text
from overrides.ingest import IngestResult
from overrides.values import get_input, validate_bulk_values
from utils.exceptions import (
    ConfigurationError,
    InvalidOverrideTypeError,
    UnknownNodeError,
    ValidationError,
)


def _graph() -> JobGraph:
    return JobGraph.model_validate(
        {
            "3": {
                "class_type": "KSampler",
                "inputs": {"seed": 1, "steps": 20, "model": ["4", 0], "extra": {"tags": ["a", "b"]}},
            },
            "4": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "sd15.safetensors"}},
            "6": {"class_type": "CLIPTextEncode"},
        }
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, True),
        ("true", True),
        (False, False),
        ("TRUE", False),
        ("True", False),
        ("yes", False),
        ("1", False),
        (1, False),
        (None, False),
    ],
)
def test_normalize_boolean_is_exact(value, expected) -> None:
    assert normalize_boolean(value) is expected


def test_normalize_text_and_number_defaults() -> None:
    assert normalize_text(None) == ""
    assert normalize_text("cat") == "cat"
    assert normalize_number(None) == 0
    assert normalize_number(2.5) == 2.5
    with pytest.raises(ValidationError):
        normalize_number("7")


@pytest.mark.asyncio
async def test_apply_returns_new_graph_and_second_apply_is_noop() -> None:
    graph = _graph()
    overrides = [
        ParameterOverride.number("3", "seed", 42),
        ParameterOverride.text("6", "text", "a cat"),
        ParameterOverride.boolean("3", "denoise_flag", "true"),
        ParameterOverride.bulk("4", {"ckpt_name": "sdxl.safetensors"}),
    ]
    engine = ParameterOverrideEngine()

    once = await engine.apply(graph, overrides)
    twice = await engine.apply(once, overrides)

    assert once.to_wire() == twice.to_wire()
    assert graph["3"].inputs["seed"] == 1
    assert "text" not in graph["6"].inputs
    assert once["3"].inputs["seed"] == 42
    assert once["3"].inputs["denoise_flag"] is True
    assert once["6"].inputs == {"text": "a cat"}
    assert once["4"].inputs["ckpt_name"] == "sdxl.safetensors"


@pytest.mark.asyncio
async def test_last_write_wins() -> None:
    overrides = [
        ParameterOverride.number("3", "seed", 5),
        ParameterOverride.text("6", "text", "first"),
        ParameterOverride.number("3", "seed", 9),
        ParameterOverride.bulk("6", '{"text": "second"}'),
    ]
    result = await ParameterOverrideEngine().apply(_graph(), overrides)
    assert result["3"].inputs["seed"] == 9
    assert result["6"].inputs["text"] == "second"


@pytest.mark.asyncio
async def test_unknown_node_is_rejected() -> None:
    with pytest.raises(UnknownNodeError, match='Node ID "99" not found'):
        await ParameterOverrideEngine().apply(_graph(), [ParameterOverride.text("99", "text", "x")])


@pytest.mark.asyncio
async def test_dict_overrides_are_accepted_and_validated() -> None:
    result = await ParameterOverrideEngine().apply(
        _graph(),
        [{"node_id": "3", "path": "steps", "value": {"kind": "number", "payload": 30}}],
    )
    assert result["3"].inputs["steps"] == 30

    with pytest.raises(ValidationError, match="Node Parameters 1"):
        await ParameterOverrideEngine().apply(_graph(), [{"node_id": "3", "value": {"kind": "text"}}])


@pytest.mark.asyncio
async def test_dot_paths_into_nested_inputs() -> None:
    engine = ParameterOverrideEngine()
    result = await engine.apply(
        _graph(),
        [
            ParameterOverride.text("3", "extra.tags.1", "z"),
            ParameterOverride.text("3", "extra.mood", "calm"),
        ],
    )
    assert get_input(result["3"].inputs, "extra.tags") == ["a", "z"]
    assert result["3"].inputs["extra"]["mood"] == "calm"

    with pytest.raises(ValidationError, match="does not exist"):
        await engine.apply(_graph(), [ParameterOverride.text("3", "missing.key", "x")])
    with pytest.raises(ValidationError, match="list index"):
        await engine.apply(_graph(), [ParameterOverride.text("3", "extra.tags.first", "x")])
    with pytest.raises(ValidationError, match="out of range"):
        await engine.apply(_graph(), [ParameterOverride.text("3", "extra.tags.5", "x")])


@pytest.mark.asyncio
async def test_connections_are_never_overwritten() -> None:
    engine = ParameterOverrideEngine()
    with pytest.raises(ValidationError, match="connected to node 4"):
        await engine.apply(_graph(), [ParameterOverride.text("3", "model", "oops")])
    with pytest.raises(ValidationError, match="model"):
        await engine.apply(_graph(), [ParameterOverride.bulk("3", {"model": "oops", "seed": 3})])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        ParameterOverride.text("3", "model.0", "hijacked"),
        ParameterOverride.number("3", "model.1", 7),
    ],
)
async def test_dot_paths_cannot_reach_inside_connections(override) -> None:
    graph = _graph()
    with pytest.raises(ValidationError, match="connected to node 4"):
        await ParameterOverrideEngine().apply(graph, [override])
    assert graph["3"].inputs["model"] == ["4", 0]


@pytest.mark.asyncio
async def test_bulk_rejects_non_primitive_values() -> None:
    with pytest.raises(InvalidOverrideTypeError) as info:
        await ParameterOverrideEngine().apply(_graph(), [ParameterOverride.bulk("3", {"cb": print})])
    assert info.value.key == "cb"

    with pytest.raises(InvalidOverrideTypeError):
        validate_bulk_values("3", {"nested": [1, {"deep": object()}]})
    with pytest.raises(ValidationError, match="must be a JSON object"):
        await ParameterOverrideEngine().apply(_graph(), [ParameterOverride.bulk("3", "[1, 2]")])
    with pytest.raises(ValidationError, match="is invalid"):
        await ParameterOverrideEngine().apply(_graph(), [ParameterOverride.bulk("3", "{oops")])


def test_bulk_nested_objects_are_allowed_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="overrides.values"):
        values = validate_bulk_values("3", {"opts": {"a": 1}, "list": [1, "x", None, True]})
    assert values["opts"] == {"a": 1}
    assert "nested object" in caplog.text


class _RecordingIngestor:
    def __init__(self) -> None:
        self.sources = []

    async def ingest(self, source, items=None) -> IngestResult:
        self.sources.append(source)
        return IngestResult(filename=f"uploaded_{len(self.sources)}.png", size=3)


@pytest.mark.asyncio
async def test_image_overrides_store_server_filename() -> None:
    graph = JobGraph.model_validate({"10": {"class_type": "LoadImage", "inputs": {"image": "old.png"}}})
    ingestor = _RecordingIngestor()
    engine = ParameterOverrideEngine(ingestor)

    result = await engine.apply(graph, [ParameterOverride.image_url("10", "image", "https://x.test/cat.png")])
    assert result["10"].inputs["image"] == "uploaded_1.png"
    assert ingestor.sources[0].url == "https://x.test/cat.png"

    with pytest.raises(ConfigurationError):
        await ParameterOverrideEngine().apply(graph, [ParameterOverride.image_binary("10", "image")])

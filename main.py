"""CLI entrypoint: run workflows against a compute server."""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
from pathlib import Path
import sys
from typing import Any, Dict, List, Optional, Tuple

from config import ClientSettings, get_settings
from core import JobGraph, ParameterOverride
from core.validation import validate_workflow
from execution import JobExecutionClient
from overrides import AssetIngestor, ParameterOverrideEngine
from utils.exceptions import JobClientError, ValidationError
from utils.files import validate_filename
from utils.logger import setup_logger


def _split_assignment(text: str, flag: str) -> Tuple[str, str]:
    target, sep, value = str(text or "").partition("=")
    if not sep or not target.strip():
        raise ValidationError(f"{flag} expects TARGET=VALUE, got {text!r}")
    return target.strip(), value


def _split_target(target: str, flag: str) -> Tuple[str, str]:
    node_id, sep, path = target.partition(".")
    if not sep or not node_id or not path:
        raise ValidationError(f"{flag} expects NODE.PATH, got {target!r}")
    return node_id, path


def parse_set(text: str) -> ParameterOverride:
    """``NODE.PATH=VALUE``; JSON scalars pick the override type, anything else is text."""
    target, raw = _split_assignment(text, "--set")
    node_id, path = _split_target(target, "--set")
    try:
        value = json.loads(raw)
    except ValueError:
        return ParameterOverride.text(node_id, path, raw)

    if isinstance(value, bool):
        return ParameterOverride.boolean(node_id, path, value)
    if isinstance(value, (int, float)):
        return ParameterOverride.number(node_id, path, value)
    if isinstance(value, str):
        return ParameterOverride.text(node_id, path, value)
    if value is None:
        return ParameterOverride.text(node_id, path, None)
    raise ValidationError(f"--set {target}: use --set-json for arrays and objects")


def parse_set_json(text: str) -> ParameterOverride:
    node_id, raw = _split_assignment(text, "--set-json")
    return ParameterOverride.bulk(node_id, raw)


def parse_image(text: str) -> ParameterOverride:
    target, url = _split_assignment(text, "--image")
    node_id, path = _split_target(target, "--image")
    return ParameterOverride.image_url(node_id, path, url.strip())


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _write_outputs(binary: Dict[str, Dict[str, Any]], out_dir: Path) -> List[str]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[str] = []
    for key, entry in binary.items():
        raw_name = str(entry.get("fileName") or f"{key}.bin")
        try:
            name = validate_filename(raw_name)
        except ValueError as exc:
            raise ValidationError(f"Refusing to write output {raw_name!r}: {exc}", {"key": key}) from exc
        target = out_dir / name
        target.write_bytes(base64.b64decode(entry["data"]))
        written.append(str(target))
    return written


async def run_workflow(args: argparse.Namespace, settings: ClientSettings) -> Tuple[Dict[str, Any], int]:
    graph: JobGraph = validate_workflow(Path(args.workflow).read_text(encoding="utf-8"))
    overrides: List[ParameterOverride] = []
    overrides.extend(parse_set(item) for item in args.set or [])
    overrides.extend(parse_set_json(item) for item in args.set_json or [])
    overrides.extend(parse_image(item) for item in args.image or [])

    async with JobExecutionClient(settings, base_url=args.url) as client:
        ingestor = AssetIngestor(
            client.transport,
            client.upload_image,
            max_image_bytes=settings.max_image_size_bytes,
            max_video_bytes=settings.max_video_size_bytes,
            url_timeout_s=settings.url_download_timeout_s,
            allow_binary=False,
        )
        graph = await ParameterOverrideEngine(ingestor).apply(graph, overrides)

        result = await client.execute(graph)
        if not result.success:
            return {"success": False, "job_id": result.job_id, "error": result.error_message}, 1

        summary: Dict[str, Any] = {
            "success": True,
            "job_id": result.job_id,
            "images": [ref.locator for ref in result.images],
            "videos": [ref.locator for ref in result.videos],
        }
        if args.out:
            processed = await client.process_results(result)
            summary["files"] = _write_outputs(processed.binary, Path(args.out))
        return summary, 0


async def show_health(args: argparse.Namespace, settings: ClientSettings) -> Tuple[Dict[str, Any], int]:
    async with JobExecutionClient(settings, base_url=args.url) as client:
        status = await client.health_check()
    return status.to_dict(), 0 if status.healthy else 1


async def show_history(args: argparse.Namespace, settings: ClientSettings) -> Tuple[Dict[str, Any], int]:
    async with JobExecutionClient(settings, base_url=args.url) as client:
        history = await client.get_history(limit=int(args.limit))
    return {"count": len(history), "history": history}, 0


COMMANDS = {
    "run": run_workflow,
    "health": show_health,
    "history": show_history,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ComfyUI job client CLI")
    parser.add_argument("--url", default=None, help="Server base URL (default: COMFYUI_BASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run")
    run.add_argument("--workflow", required=True, help="API-format workflow JSON file")
    run.add_argument("--set", action="append", metavar="NODE.PATH=VALUE")
    run.add_argument("--set-json", action="append", metavar="NODE=JSON")
    run.add_argument("--image", action="append", metavar="NODE.PATH=URL")
    run.add_argument("--out", default="", help="Directory for downloaded artifacts")

    sub.add_parser("health")

    history = sub.add_parser("history")
    history.add_argument("--limit", type=int, default=20)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logger(
        "",
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        log_file=settings.logging.file,
        use_rich=settings.logging.use_rich,
    )

    try:
        payload, code = asyncio.run(COMMANDS[args.command](args, settings.client))
    except (JobClientError, OSError) as exc:
        payload = {"success": False, "error": getattr(exc, "message", str(exc))}
        code = 1
    _print(payload)
    return code


if __name__ == "__main__":
    sys.exit(main())

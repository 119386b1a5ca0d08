"""Map a completed job's output document to artifact references."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from core.contracts import ArtifactKind, ArtifactRef


logger = logging.getLogger(__name__)

# "gifs" is what animated/video producer nodes emit
ARTIFACT_COLLECTIONS: Tuple[Tuple[str, ArtifactKind], ...] = (
    ("images", ArtifactKind.IMAGE),
    ("videos", ArtifactKind.VIDEO),
    ("gifs", ArtifactKind.VIDEO),
)


class ResultExtractor:
    """
    Flatten ``{node_id: {"images": [...], "videos": [...], "gifs": [...]}}``.

    Artifacts of one node are contiguous; order across nodes follows the
    document's key order and is not a contract.
    """

    def extract(self, raw_outputs: Dict[str, Any]) -> List[ArtifactRef]:
        artifacts: List[ArtifactRef] = []
        if not isinstance(raw_outputs, dict):
            return artifacts

        for node_id, node_output in raw_outputs.items():
            if not isinstance(node_output, dict):
                continue
            for collection, kind in ARTIFACT_COLLECTIONS:
                entries = node_output.get(collection)
                if not isinstance(entries, list):
                    continue
                for entry in entries:
                    if not isinstance(entry, dict) or not entry.get("filename"):
                        logger.debug(f"Skipping {collection} entry without filename in node {node_id}")
                        continue
                    artifacts.append(
                        ArtifactRef(
                            filename=str(entry["filename"]),
                            subfolder=str(entry.get("subfolder") or ""),
                            folder_type=str(entry.get("type") or "output"),
                            kind=kind,
                        )
                    )
        return artifacts

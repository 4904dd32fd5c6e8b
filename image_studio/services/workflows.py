"""Mode table: which RunningHub workflow and node bindings each mode uses."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from image_studio.schemas.remote_task import NodeBinding, WorkflowSpec
from image_studio.services.errors import ValidationError

# Modes handled locally, never sent to the provider.
LOCAL_MODES = ("blackAndWhite",)

_SINGLE_IMAGE = {
    "easyLighting": ("1889119863665844226", "22"),
    "cartoonBlindBox": ("1887752924372860930", "132"),
    "cartoonPortrait": ("1889592477429522434", "226"),
    "animeCharacter": ("1889855846065614850", "40"),
    "dreamlikeOil": ("1889903634522550273", "40"),
    "idPhoto": ("1834120666105933826", "14"),
}

_DUAL_IMAGE = {
    # mode: (workflow id, source node, aux node)
    "clothTryOn": ("1891600506811273217", "6", "7"),
}


def default_workflows() -> dict[str, WorkflowSpec]:
    table: dict[str, WorkflowSpec] = {}
    for mode, (workflow_id, node_id) in _SINGLE_IMAGE.items():
        table[mode] = WorkflowSpec(
            workflow_id=workflow_id,
            nodes=[NodeBinding(node_id=node_id)],
        )
    for mode, (workflow_id, source_node, aux_node) in _DUAL_IMAGE.items():
        table[mode] = WorkflowSpec(
            workflow_id=workflow_id,
            nodes=[
                NodeBinding(node_id=source_node, role="source"),
                NodeBinding(node_id=aux_node, role="aux"),
            ],
        )
    return table


def parse_workflows(raw: Any) -> dict[str, WorkflowSpec]:
    """
    Parse a mode table from decoded JSON:
    ``{"mode": {"workflow_id": "...", "nodes": [{"node_id": "..."}]}}``.
    """
    if not isinstance(raw, dict) or not raw:
        raise ValueError("Workflow table must be a non-empty JSON object")
    table: dict[str, WorkflowSpec] = {}
    for mode, entry in raw.items():
        try:
            spec = WorkflowSpec.model_validate(entry)
        except PydanticValidationError as exc:
            raise ValueError(f"Invalid workflow entry for mode '{mode}': {exc}") from exc
        if sum(1 for n in spec.nodes if n.role == "source") != 1:
            raise ValueError(f"Mode '{mode}' must bind exactly one source node")
        table[str(mode)] = spec
    return table


def load_workflows_file(path: Path) -> dict[str, WorkflowSpec]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_workflows(json.load(f))


def resolve_workflow(table: dict[str, WorkflowSpec], mode: str | None) -> WorkflowSpec:
    """Look up ``mode``; unknown or local-only modes are a validation error."""
    if not mode:
        raise ValidationError("Mode is required")
    if mode in LOCAL_MODES:
        raise ValidationError(f"Mode '{mode}' is processed locally, not by RunningHub")
    spec = table.get(mode)
    if spec is None:
        raise ValidationError(f"Invalid mode: {mode}")
    return spec

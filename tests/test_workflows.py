# tests/test_workflows.py

from __future__ import annotations

import json

import pytest

from image_studio.services.errors import ValidationError
from image_studio.services.workflows import (
    default_workflows,
    load_workflows_file,
    parse_workflows,
    resolve_workflow,
)


def test_default_table_has_single_and_dual_image_modes() -> None:
    table = default_workflows()

    assert table["cartoonPortrait"].workflow_id == "1889592477429522434"
    assert [n.node_id for n in table["cartoonPortrait"].nodes] == ["226"]
    assert not table["cartoonPortrait"].requires_aux

    try_on = table["clothTryOn"]
    assert try_on.requires_aux
    assert [(n.node_id, n.role) for n in try_on.nodes] == [("6", "source"), ("7", "aux")]


def test_node_info_list_binds_source_and_aux() -> None:
    spec = default_workflows()["clothTryOn"]

    assert spec.node_info_list("person.png", "shirt.png") == [
        {"nodeId": "6", "fieldName": "image", "fieldValue": "person.png"},
        {"nodeId": "7", "fieldName": "image", "fieldValue": "shirt.png"},
    ]


def test_resolve_rejects_unknown_local_and_missing_modes() -> None:
    table = default_workflows()
    with pytest.raises(ValidationError, match="Invalid mode"):
        resolve_workflow(table, "vaporwave")
    with pytest.raises(ValidationError, match="locally"):
        resolve_workflow(table, "blackAndWhite")
    with pytest.raises(ValidationError, match="required"):
        resolve_workflow(table, "")


def test_workflows_file_replaces_defaults(tmp_path) -> None:
    path = tmp_path / "workflows.json"
    path.write_text(json.dumps({
        "sketch": {"workflow_id": "42", "nodes": [{"node_id": "3"}]},
    }), encoding="utf-8")

    table = load_workflows_file(path)

    assert list(table) == ["sketch"]
    assert table["sketch"].nodes[0].field_name == "image"


def test_parse_rejects_entries_without_exactly_one_source() -> None:
    with pytest.raises(ValueError, match="exactly one source"):
        parse_workflows({"bad": {"workflow_id": "1", "nodes": [{"node_id": "1", "role": "aux"}]}})
    with pytest.raises(ValueError, match="Invalid workflow entry"):
        parse_workflows({"bad": {"workflow_id": "1", "nodes": []}})
    with pytest.raises(ValueError):
        parse_workflows([])

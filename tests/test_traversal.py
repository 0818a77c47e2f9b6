import copy
from typing import Any

import pytest
from graph_descend import (
    OVERRUN_MESSAGE,
    build,
    is_overrun_marker,
)

from tests.testing.documents import (
    NESTED_BFS_DEPTHS,
    NESTED_BFS_NAMES,
    NESTED_BFS_PATHS,
)
from tests.testing.invoker import DirectOrLowered


def _names(records: list[dict[str, Any]]) -> list[str]:
    return [r["name"] for r in records if not is_overrun_marker(r)]


def test_full_descent(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties")
    records = direct_or_lowered.descend(plan, nested_document)

    assert len(records) == 12
    assert _names(records) == NESTED_BFS_NAMES
    assert [r["_idx"] for r in records] == NESTED_BFS_PATHS
    assert [r["_depth"] for r in records] == NESTED_BFS_DEPTHS
    assert [r["_ord"] for r in records] == list(range(12))
    assert not any(is_overrun_marker(r) for r in records)

    assert records[0] == {
        "_ord": 0, "_depth": 0, "_idx": "0", "_id": 1, "name": "root", "val": 0
    }
    assert records[1] == {"_ord": 1, "_depth": 1, "_idx": "0_0", "name": "a", "val": 1}
    assert records[2] == {"_ord": 2, "_depth": 1, "_idx": "0_1", "name": "b", "val": 2}


def test_max_elements_truncates(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties", max_elements=5)
    records = direct_or_lowered.descend(plan, nested_document)

    assert len(records) == 6
    assert _names(records) == NESTED_BFS_NAMES[:5]
    assert [r["_ord"] for r in records[:5]] == [0, 1, 2, 3, 4]
    assert records[-1] == {"WARNING": OVERRUN_MESSAGE}
    assert is_overrun_marker(records[-1])


def test_max_elements_exactly_enough(
    nested_document, direct_or_lowered: DirectOrLowered
):
    plan = build("children", start_with="properties", max_elements=12)
    records = direct_or_lowered.descend(plan, nested_document)
    assert _names(records) == NESTED_BFS_NAMES
    assert not is_overrun_marker(records[-1])

    records = direct_or_lowered.descend(plan.replace(max_elements=11), nested_document)
    assert len(records) == 12
    assert _names(records) == NESTED_BFS_NAMES[:11]
    assert is_overrun_marker(records[-1])


def test_max_elements_zero(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties", max_elements=0)
    assert direct_or_lowered.descend(plan, nested_document) == [
        {"WARNING": OVERRUN_MESSAGE}
    ]


def test_max_elements_negative(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties", max_elements=-3)
    assert direct_or_lowered.descend(plan, nested_document) == []


def test_max_depth(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties")

    records = direct_or_lowered.descend(plan.replace(max_depth=1), nested_document)
    assert _names(records) == ["root", "a", "b"]
    # The branching field is still removed at the limiting depth.
    assert records[1] == {"_ord": 1, "_depth": 1, "_idx": "0_0", "name": "a", "val": 1}

    records = direct_or_lowered.descend(plan.replace(max_depth=0), nested_document)
    assert _names(records) == ["root"]

    records = direct_or_lowered.descend(plan.replace(max_depth=2), nested_document)
    assert _names(records) == NESTED_BFS_NAMES[:8]


def test_overrun_counts_only_reachable_nodes(
    nested_document, direct_or_lowered: DirectOrLowered
):
    plan = build("children", start_with="properties", max_depth=1, max_elements=3)
    records = direct_or_lowered.descend(plan, nested_document)
    assert _names(records) == ["root", "a", "b"]
    assert not any(is_overrun_marker(r) for r in records)

    records = direct_or_lowered.descend(plan.replace(max_elements=2), nested_document)
    assert _names(records) == ["root", "a"]
    assert is_overrun_marker(records[-1])


def test_negative_max_depth_descends_fully(
    nested_document, direct_or_lowered: DirectOrLowered
):
    plan = build("children", start_with="properties", max_depth=-1)
    records = direct_or_lowered.descend(plan, nested_document)
    assert _names(records) == NESTED_BFS_NAMES


def test_omit_fields(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties", omit_fields=["val"])
    records = direct_or_lowered.descend(plan, nested_document)

    assert _names(records) == NESTED_BFS_NAMES
    assert all("val" not in r for r in records)
    assert records[0] == {
        "_ord": 0, "_depth": 0, "_idx": "0", "_id": 1, "name": "root"
    }


def test_omit_multiple_fields(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties", omit_fields=["val", "_id"])
    records = direct_or_lowered.descend(plan, nested_document)
    assert records[0] == {"_ord": 0, "_depth": 0, "_idx": "0", "name": "root"}
    assert records[5] == {"_ord": 5, "_depth": 2, "_idx": "0_1_0", "name": "b1"}


def test_scalar_branch_is_leaf(direct_or_lowered: DirectOrLowered):
    plan = build("children")
    records = direct_or_lowered.descend(plan, {"name": "x", "children": 5})
    assert records == [{"_ord": 0, "_depth": 0, "_idx": "0", "name": "x"}]


@pytest.mark.parametrize(
    "children",
    [None, 5, "text", {"name": "single"}, []],
    ids=["null", "int", "string", "document", "empty"],
)
def test_non_array_branch_is_leaf(children: Any, direct_or_lowered: DirectOrLowered):
    plan = build("children")
    document = {"name": "leaf", "children": children}
    assert direct_or_lowered.descend(plan, document) == [
        {"_ord": 0, "_depth": 0, "_idx": "0", "name": "leaf"}
    ]


def test_absent_branch_is_leaf(direct_or_lowered: DirectOrLowered):
    plan = build("children")
    assert direct_or_lowered.descend(plan, {"name": "leaf"}) == [
        {"_ord": 0, "_depth": 0, "_idx": "0", "name": "leaf"}
    ]


def test_non_document_elements_keep_their_index(direct_or_lowered: DirectOrLowered):
    plan = build("children")
    document = {
        "name": "p",
        "children": [1, {"name": "c"}, "x", {"name": "d"}, None],
    }
    records = direct_or_lowered.descend(plan, document)
    assert [r["_idx"] for r in records] == ["0", "0_1", "0_3"]
    assert _names(records) == ["p", "c", "d"]


def test_tuple_branch(direct_or_lowered: DirectOrLowered):
    plan = build("children")
    document = {"name": "p", "children": ({"name": "c"},)}
    records = direct_or_lowered.descend(plan, document)
    assert _names(records) == ["p", "c"]


def test_start_with_applies_only_at_root(direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties")
    document = {
        "properties": [
            {
                "name": "p",
                "properties": [{"name": "deep"}],
                "children": [{"name": "c"}],
            }
        ],
        "children": "kept",
    }
    records = direct_or_lowered.descend(plan, document)
    assert records == [
        {"_ord": 0, "_depth": 0, "_idx": "0", "children": "kept"},
        {
            "_ord": 1,
            "_depth": 1,
            "_idx": "0_0",
            "name": "p",
            "properties": [{"name": "deep"}],
        },
        {"_ord": 2, "_depth": 2, "_idx": "0_0_0", "name": "c"},
    ]


def test_dollar_prefixed_branch_field(direct_or_lowered: DirectOrLowered):
    plan = build("$kids")
    document = {"name": "r", "$kids": [{"name": "k", "$kids": [{"name": "kk"}]}]}
    records = direct_or_lowered.descend(plan, document)
    assert records == [
        {"_ord": 0, "_depth": 0, "_idx": "0", "name": "r"},
        {"_ord": 1, "_depth": 1, "_idx": "0_0", "name": "k"},
        {"_ord": 2, "_depth": 2, "_idx": "0_0_0", "name": "kk"},
    ]


def test_show_schema(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build(
        "children", start_with="properties", omit_fields=["val"], show_schema=True
    )
    records = direct_or_lowered.descend(plan, nested_document)

    # The schema describes the sub-document before any field is removed.
    assert records[0]["schema"] == [
        {"fieldname": "_id", "type": "int"},
        {"fieldname": "name", "type": "string"},
        {"fieldname": "val", "type": "int"},
        {"fieldname": "properties", "type": "array"},
    ]
    assert "val" not in records[0]
    assert "properties" not in records[0]

    b1y = records[NESTED_BFS_NAMES.index("b1y")]
    assert b1y["schema"] == [
        {"fieldname": "name", "type": "string"},
        {"fieldname": "val", "type": "int"},
        {"fieldname": "children", "type": "null"},
    ]
    assert all("schema" in r for r in records)


def test_no_schema_by_default(nested_document, direct_or_lowered: DirectOrLowered):
    plan = build("children", start_with="properties")
    records = direct_or_lowered.descend(plan, nested_document)
    assert all("schema" not in r for r in records)


@pytest.mark.parametrize("max_elements", [0, 1, 3, 7, 12, 25])
@pytest.mark.parametrize("max_depth", [0, 1, 2, 100])
def test_descent_properties(
    nested_document,
    direct_or_lowered: DirectOrLowered,
    max_elements: int,
    max_depth: int,
):
    plan = build(
        "children",
        start_with="properties",
        max_elements=max_elements,
        max_depth=max_depth,
        omit_fields=["val"],
    )
    records = direct_or_lowered.descend(plan, nested_document)
    normal = [r for r in records if not is_overrun_marker(r)]

    # Breadth-first: shallower records always come first.
    for a in normal:
        for b in normal:
            if a["_depth"] < b["_depth"]:
                assert a["_ord"] < b["_ord"]

    # Order is contiguous from zero.
    assert [r["_ord"] for r in normal] == list(range(len(normal)))

    # Paths are unique and extend the path of an emitted parent.
    paths = {r["_idx"]: r for r in normal}
    assert len(paths) == len(normal)
    for record in normal:
        assert record["_depth"] <= max_depth
        assert "val" not in record
        assert record["_depth"] == record["_idx"].count("_")
        if record["_idx"] != "0":
            parent = paths[record["_idx"].rsplit("_", 1)[0]]
            assert parent["_depth"] == record["_depth"] - 1
        branch_field = "properties" if record["_depth"] == 0 else "children"
        assert branch_field not in record

    # The marker appears last, and only when nodes were left over.
    reachable = sum(1 for depth in NESTED_BFS_DEPTHS if depth <= max_depth)
    markers = [i for i, r in enumerate(records) if is_overrun_marker(r)]
    if reachable > max_elements:
        assert markers == [len(records) - 1]
        assert len(normal) == max_elements
    else:
        assert markers == []
        assert len(normal) == reachable


def test_descent_is_repeatable(nested_document, direct_or_lowered: DirectOrLowered):
    original = copy.deepcopy(nested_document)
    plan = build("children", start_with="properties", show_schema=True)

    first = direct_or_lowered.descend(plan, nested_document)
    second = direct_or_lowered.descend(plan, nested_document)

    assert first == second
    assert nested_document == original

"""Lowers plans into MongoDB aggregation expressions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from typing_extensions import override

from graph_descend.serializers.base import Serializer
from graph_descend.types import (
    DEPTH_FIELD,
    ORDER_FIELD,
    OVERRUN_MARKER,
    PATH_FIELD,
    PATH_SEPARATOR,
    ROOT_PATH,
    SCHEMA_FIELD,
)

if TYPE_CHECKING:
    from graph_descend.plan import Plan

GetFieldMode = Literal["native", "compat"]

# Names used inside the generated expression.
_RESULT = "result"
_WORKLIST = "subLevelsToInspect"
_SUBDOC = "subdoc"


def _quote(name: str) -> dict[str, Any]:
    # Field names starting with `$` would otherwise be read as field paths.
    return {"$literal": name}


class AggregationExpression(Serializer):
    """
    Serializer producing a MongoDB aggregation expression.

    The expression is a `$reduce` over `max_elements + 1` steps whose
    accumulator holds the records emitted so far (`result`) and the pending
    sub-documents (`subLevelsToInspect`). It evaluates to the array of records
    and is typically used in a `$set` stage, for example via
    [Plan.stage][graph_descend.Plan.stage].

    Parameters
    ----------
    get_field :
        How to read fields whose names are only known at runtime. `"native"`
        uses `$getField`, which requires MongoDB 5.0 or later. `"compat"`
        emulates it with `$objectToArray` and `$filter` for older servers.

    Raises
    ------
    ValueError
        If `get_field` is not one of the supported modes.
    """

    def __init__(self, get_field: GetFieldMode = "native") -> None:
        if get_field not in ("native", "compat"):
            raise ValueError(f"Unsupported get_field mode: {get_field!r}")
        self.get_field = get_field

    def _get(self, input: Any, field: str) -> Any:
        """Return an expression reading `field` from the document `input`."""
        if self.get_field == "native":
            return {"$getField": {"field": _quote(field), "input": input}}
        return {
            "$arrayElemAt": [
                {
                    "$map": {
                        "input": {
                            "$filter": {
                                "input": {"$objectToArray": input},
                                "as": "kv",
                                "cond": {"$eq": ["$$kv.k", _quote(field)]},
                            }
                        },
                        "as": "kv",
                        "in": "$$kv.v",
                    }
                },
                0,
            ]
        }

    def _branch_field(self, plan: Plan, item: Any) -> Any:
        """Return an expression for the name of the branching field of `item`."""
        assert plan.start_with is not None
        if plan.start_with == plan.connect_to_field:
            return _quote(plan.connect_to_field)
        return {
            "$cond": [
                {"$lte": [self._get(item, DEPTH_FIELD), 0]},
                _quote(plan.start_with),
                _quote(plan.connect_to_field),
            ]
        }

    def _children(self, plan: Plan, item: Any) -> Any:
        """Return an expression for the branching value of `item`."""
        assert plan.start_with is not None
        subdoc = self._get(item, _SUBDOC)
        if plan.start_with == plan.connect_to_field:
            return self._get(subdoc, plan.connect_to_field)
        # `$getField` needs a constant field name, so choose between two reads.
        return {
            "$cond": [
                {"$lte": [self._get(item, DEPTH_FIELD), 0]},
                self._get(subdoc, plan.start_with),
                self._get(subdoc, plan.connect_to_field),
            ]
        }

    def _record(self, plan: Plan) -> Any:
        """Return an expression building the record for `$$currLevelElement`."""
        subdoc = self._get("$$currLevelElement", _SUBDOC)
        parts: list[Any] = [
            [{"k": ORDER_FIELD, "v": "$$this"}],
            [{"k": DEPTH_FIELD, "v": self._get("$$currLevelElement", DEPTH_FIELD)}],
            [{"k": PATH_FIELD, "v": self._get("$$currLevelElement", PATH_FIELD)}],
        ]
        if plan.show_schema:
            parts.append(
                [
                    {
                        "k": SCHEMA_FIELD,
                        "v": {
                            "$map": {
                                "input": {"$objectToArray": subdoc},
                                "as": "field",
                                "in": {
                                    "fieldname": "$$field.k",
                                    "type": {"$type": "$$field.v"},
                                },
                            }
                        },
                    }
                ]
            )
        parts.append(
            {
                "$filter": {
                    "input": {"$objectToArray": subdoc},
                    "as": "field",
                    "cond": {
                        "$and": [
                            {"$ne": ["$$field.k", "$$currChildFieldName"]},
                            {
                                "$not": [
                                    {
                                        "$in": [
                                            "$$field.k",
                                            {"$literal": list(plan.omit_fields)},
                                        ]
                                    }
                                ]
                            },
                        ]
                    },
                }
            }
        )
        return {"$arrayToObject": [{"$concatArrays": parts}]}

    def _next_result(self, plan: Plan) -> Any:
        """Return the update expression for the emitted records."""
        emission = {
            "$cond": [
                {"$gte": ["$$this", plan.max_elements]},
                [{"$literal": dict(OVERRUN_MARKER)}],
                [self._record(plan)],
            ]
        }
        return {
            "$let": {
                "vars": {"currLevelElement": {"$first": f"$$value.{_WORKLIST}"}},
                "in": {
                    "$let": {
                        "vars": {
                            "currChildFieldName": self._branch_field(
                                plan, "$$currLevelElement"
                            ),
                        },
                        "in": {
                            "$concatArrays": [
                                f"$$value.{_RESULT}",
                                # Nothing is emitted once the worklist is empty.
                                {
                                    "$cond": [
                                        {"$ifNull": ["$$currLevelElement", False]},
                                        emission,
                                        [],
                                    ]
                                },
                            ]
                        },
                    }
                },
            }
        }

    def _next_worklist(self, plan: Plan) -> Any:
        """Return the update expression for the pending sub-documents."""
        head = {"$first": f"$$value.{_WORKLIST}"}
        child = {"$arrayElemAt": ["$$currLevelChildren", "$$this"]}
        child_item = {
            DEPTH_FIELD: "$$newDepthNumber",
            PATH_FIELD: {
                "$concat": ["$$currLevelIdx", PATH_SEPARATOR, {"$toString": "$$this"}]
            },
            _SUBDOC: child,
        }
        # Elements that are not documents are skipped but keep their index.
        children = {
            "$reduce": {
                "input": {"$range": [0, {"$size": "$$currLevelChildren"}]},
                "initialValue": [],
                "in": {
                    "$concatArrays": [
                        "$$value",
                        {
                            "$cond": [
                                {"$eq": [{"$type": child}, "object"]},
                                [child_item],
                                [],
                            ]
                        },
                    ]
                },
            }
        }
        can_descend = {
            "$and": [
                {"$isArray": "$$currLevelChildren"},
                {"$lte": ["$$newDepthNumber", plan.max_depth]},
            ]
        }
        tail = {
            "$slice": [
                f"$$value.{_WORKLIST}",
                1,
                {"$add": ["$$subLevelsToInspectSize", 1]},
            ]
        }
        return {
            "$let": {
                "vars": {
                    "subLevelsToInspectSize": {"$size": f"$$value.{_WORKLIST}"},
                    "currLevelChildren": self._children(plan, head),
                    "currLevelIdx": self._get(head, PATH_FIELD),
                    "newDepthNumber": {"$add": [self._get(head, DEPTH_FIELD), 1]},
                },
                "in": {
                    "$concatArrays": [
                        # Drop the head, which has just been emitted.
                        {"$cond": [{"$gt": ["$$subLevelsToInspectSize", 0]}, tail, []]},
                        {"$cond": [can_descend, children, []]},
                    ]
                },
            }
        }

    @override
    def lower(self, plan: Plan) -> dict[str, Any]:
        descent = {
            "$reduce": {
                # One extra step to detect documents exceeding `max_elements`.
                "input": {"$range": [0, plan.max_elements + 1]},
                "initialValue": {
                    _RESULT: [],
                    _WORKLIST: [
                        {DEPTH_FIELD: 0, PATH_FIELD: ROOT_PATH, _SUBDOC: "$$ROOT"}
                    ],
                },
                "in": {
                    _RESULT: self._next_result(plan),
                    _WORKLIST: self._next_worklist(plan),
                },
            }
        }
        return {"$let": {"vars": {"descent": descent}, "in": f"$$descent.{_RESULT}"}}

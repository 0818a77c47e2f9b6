"""
Flattens nested documents into breadth-first ordered arrays of sub-documents.

The main entry point is [`build`][graph_descend.build], which returns a
[`Plan`][graph_descend.Plan]. A plan can be called directly on a document, or
lowered into a MongoDB aggregation expression with
[`Plan.to_expression`][graph_descend.Plan.to_expression].
"""

from .plan import MAX_DEPTH_LIMIT, Plan, build
from .traversal import descend
from .types import (
    DEPTH_FIELD,
    ORDER_FIELD,
    OVERRUN_MESSAGE,
    PATH_FIELD,
    SCHEMA_FIELD,
    WARNING_FIELD,
    Record,
    WorkItem,
    is_overrun_marker,
)

__all__ = [
    "DEPTH_FIELD",
    "MAX_DEPTH_LIMIT",
    "ORDER_FIELD",
    "OVERRUN_MESSAGE",
    "PATH_FIELD",
    "Plan",
    "Record",
    "SCHEMA_FIELD",
    "WARNING_FIELD",
    "WorkItem",
    "build",
    "descend",
    "is_overrun_marker",
]

"""Defines the worklist entries and output records produced by a descent."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from immutabledict import immutabledict

ORDER_FIELD = "_ord"
DEPTH_FIELD = "_depth"
PATH_FIELD = "_idx"
SCHEMA_FIELD = "schema"

ROOT_PATH = "0"
PATH_SEPARATOR = "_"

WARNING_FIELD = "WARNING"
OVERRUN_MESSAGE = (
    "The 'maxElements' parameter for graphDescend() was not set to a large "
    "enough value to fully descend a nested document"
)
OVERRUN_MARKER: immutabledict[str, str] = immutabledict(
    {WARNING_FIELD: OVERRUN_MESSAGE}
)

Record = dict[str, Any]
"""One element of the flattened output array."""


@dataclass(frozen=True)
class WorkItem:
    """
    A sub-document waiting in the worklist.

    Parameters
    ----------
    depth :
        Number of branching fields followed from the root to reach this
        sub-document. The root has depth 0.
    path :
        Position of the sub-document, built from the parent's path and the
        child's array index (e.g. `"0_1_0"`). The root has path `"0"`.
    subdoc :
        The sub-document itself. This is a reference into the source document
        and must not be modified.
    """

    depth: int
    path: str
    subdoc: Mapping[str, Any]

    @staticmethod
    def root(document: Mapping[str, Any]) -> WorkItem:
        """Create the work item for the top level of `document`."""
        return WorkItem(depth=0, path=ROOT_PATH, subdoc=document)

    def child(self, index: int, subdoc: Mapping[str, Any]) -> WorkItem:
        """Create the work item for the `index`-th child of this item."""
        return WorkItem(
            depth=self.depth + 1,
            path=f"{self.path}{PATH_SEPARATOR}{index}",
            subdoc=subdoc,
        )


def overrun_marker() -> Record:
    """Return a fresh copy of the record signalling a truncated descent."""
    return dict(OVERRUN_MARKER)


def is_overrun_marker(record: Mapping[str, Any]) -> bool:
    """Return true if `record` is the truncation marker rather than a sub-document."""
    return WARNING_FIELD in record and ORDER_FIELD not in record

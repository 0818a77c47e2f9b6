"""Implements the bounded breadth-first descent through a single document."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from graph_descend.types import (
    DEPTH_FIELD,
    ORDER_FIELD,
    PATH_FIELD,
    SCHEMA_FIELD,
    Record,
    WorkItem,
    overrun_marker,
)
from graph_descend.utils.type_tags import is_array, is_document, type_tag

if TYPE_CHECKING:
    from graph_descend.plan import Plan

logger = logging.getLogger(__name__)


def descend(document: Mapping[str, Any], *, plan: Plan) -> list[Record]:
    """
    Flatten the sub-documents of `document` in breadth-first order.

    Parameters
    ----------
    document :
        The nested document to flatten. It is not modified.
    plan :
        The parameters of the descent.

    Returns
    -------
    :
        One record per visited sub-document, followed by an overrun marker if
        `plan.max_elements` was too small to visit every sub-document.

    Raises
    ------
    TypeError
        If `document` is not a mapping.
    """
    if not is_document(document):
        raise TypeError(
            f"Expected a document mapping, got {type(document).__name__}"
        )
    return _Descent(plan, document).descend()


class _Descent:
    """
    Handles a single descent through one document.

    The worklist starts with the root and is processed strictly first-in,
    first-out: the head is emitted, then replaced by its children at the tail.
    Every step is bounded by the iteration index, never by the worklist size.

    This class should not be reused between descents.
    """

    def __init__(self, plan: Plan, document: Mapping[str, Any]) -> None:
        self.plan = plan
        self.document = document
        self._used = False

    def _check_first_use(self):
        assert not self._used, "Descents cannot be re-used."
        self._used = True

    def descend(self) -> list[Record]:
        """
        Execute the descent.

        Returns
        -------
        :
            The flattened records.
        """
        self._check_first_use()

        emitted: list[Record] = []
        worklist: deque[WorkItem] = deque([WorkItem.root(self.document)])

        # One step beyond `max_elements` detects documents that do not fit.
        for order in range(self.plan.max_elements + 1):
            if not worklist:
                break

            head = worklist.popleft()
            if order == self.plan.max_elements:
                logger.debug(
                    "Stopping descent after %d elements with %d pending",
                    order,
                    len(worklist) + 1,
                )
                emitted.append(overrun_marker())
                break

            emitted.append(self._record(order, head))
            worklist.extend(self._children(head))

        return emitted

    def _record(self, order: int, item: WorkItem) -> Record:
        """
        Build the output record for a visited sub-document.

        The record holds the position metadata, the optional schema, and the
        sub-document's own fields minus the active branching field and any
        omitted fields.
        """
        record: Record = {
            ORDER_FIELD: order,
            DEPTH_FIELD: item.depth,
            PATH_FIELD: item.path,
        }
        if self.plan.show_schema:
            record[SCHEMA_FIELD] = [
                {"fieldname": name, "type": type_tag(value)}
                for name, value in item.subdoc.items()
            ]

        branch_field = self.plan.branch_field(item.depth)
        omit_fields = self.plan.omit_fields
        for name, value in item.subdoc.items():
            if name != branch_field and name not in omit_fields:
                record[name] = value
        return record

    def _children(self, item: WorkItem) -> Iterable[WorkItem]:
        """
        Return the work items for the children of `item`.

        Notes
        -----
        - A branching value that is not an array (absent, null, a scalar or a
          single document) means `item` is a leaf.
        - No children are returned beyond `plan.max_depth`.
        - Array elements that are not documents are skipped, but still count
          towards the index used in the children's paths.
        """
        if item.depth + 1 > self.plan.max_depth:
            return []

        children = item.subdoc.get(self.plan.branch_field(item.depth))
        if not is_array(children):
            return []

        return [
            item.child(index, child)
            for index, child in enumerate(children)
            if is_document(child)
        ]

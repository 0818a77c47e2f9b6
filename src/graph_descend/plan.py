"""Defines the descent plan and the `build` entry point."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from graph_descend.serializers import AggregationExpression, Serializer
from graph_descend.traversal import descend
from graph_descend.types import Record

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TO_FIELD = "children"
DEFAULT_MAX_ELEMENTS = 25

# MongoDB supports 100 levels of nesting for BSON documents.
MAX_DEPTH_LIMIT = 100


def _clamp_max_depth(max_depth: int) -> int:
    if max_depth < 0 or max_depth > MAX_DEPTH_LIMIT:
        logger.debug(
            "max_depth %d is outside [0, %d], using %d",
            max_depth,
            MAX_DEPTH_LIMIT,
            MAX_DEPTH_LIMIT,
        )
        return MAX_DEPTH_LIMIT
    return max_depth


def _check_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"'{name}' must be an int, not {type(value).__name__}")


def _normalize_omit_fields(omit_fields: Iterable[str]) -> tuple[str, ...]:
    if isinstance(omit_fields, str | bytes):
        raise TypeError(
            "'omit_fields' must be an iterable of field names, not a single string"
        )
    normalized: dict[str, None] = {}
    for field in omit_fields:
        if not isinstance(field, str):
            raise TypeError(
                f"'omit_fields' entries must be strings, not {type(field).__name__}"
            )
        normalized[field] = None
    return tuple(normalized)


@dataclasses.dataclass(frozen=True, kw_only=True)
class Plan:
    """
    Parameters for flattening one nested document, breadth-first.

    A plan is immutable and side-effect free. Calling it with a document
    returns the flattened array of sub-documents; lowering it with a
    [Serializer][graph_descend.serializers.Serializer] produces an equivalent
    expression for an external evaluator.

    Parameters
    ----------
    connect_to_field :
        Field in each sub-document holding the array of child sub-documents.
    start_with :
        Field at the top level of the document holding the first array of
        children. If `None`, `connect_to_field` is used at the top level too.
    max_elements :
        Maximum number of sub-documents to emit. If the document holds more,
        the output ends with a single overrun marker.
    omit_fields :
        Fields to remove from every emitted sub-document.
    max_depth :
        Maximum depth to descend. Values outside `[0, 100]` are replaced by
        100, the nesting limit of BSON documents.
    show_schema :
        Whether each emitted record includes a `schema` listing the
        sub-document's fields and their types.
    """

    connect_to_field: str = DEFAULT_CONNECT_TO_FIELD
    start_with: str | None = None
    max_elements: int = DEFAULT_MAX_ELEMENTS
    omit_fields: tuple[str, ...] = ()
    max_depth: int = MAX_DEPTH_LIMIT
    show_schema: bool = False

    def __post_init__(self) -> None:
        """Normalize the parameters."""
        if not isinstance(self.connect_to_field, str):
            raise TypeError(
                "'connect_to_field' must be a str, "
                f"not {type(self.connect_to_field).__name__}"
            )
        if self.start_with is not None and not isinstance(self.start_with, str):
            raise TypeError(
                f"'start_with' must be a str, not {type(self.start_with).__name__}"
            )
        _check_int("max_elements", self.max_elements)
        _check_int("max_depth", self.max_depth)

        # `dataclasses.replace` passes every field back through `__init__`,
        # so normalization must be idempotent. Fields are set through
        # `object.__setattr__` because the dataclass is frozen.
        start_with = self.start_with or self.connect_to_field
        object.__setattr__(self, "start_with", start_with)
        omit_fields = _normalize_omit_fields(self.omit_fields)
        object.__setattr__(self, "omit_fields", omit_fields)
        object.__setattr__(self, "max_depth", _clamp_max_depth(self.max_depth))
        object.__setattr__(self, "show_schema", bool(self.show_schema))

    def branch_field(self, depth: int) -> str:
        """Return the field holding the children of a sub-document at `depth`."""
        if depth <= 0:
            assert self.start_with is not None
            return self.start_with
        return self.connect_to_field

    def replace(self, **kwargs: Any) -> Plan:
        """
        Return a copy of this plan with some parameters changed.

        Parameters
        ----------
        kwargs :
            Parameters to change.

        Returns
        -------
        :
            The new, normalized plan.

        Raises
        ------
        TypeError
            If an unknown parameter is given.

        Notes
        -----
        - `start_with` was resolved when this plan was created, so changing
          only `connect_to_field` keeps the previous top-level field.
        """
        return dataclasses.replace(self, **kwargs)

    def descend(self, document: Mapping[str, Any]) -> list[Record]:
        """
        Flatten `document` into an ordered array of sub-documents.

        Parameters
        ----------
        document :
            The nested document to flatten. It is not modified.

        Returns
        -------
        :
            The flattened sub-documents in breadth-first order.
        """
        return descend(document, plan=self)

    __call__ = descend

    def apply(self, document: Mapping[str, Any], as_field: str) -> dict[str, Any]:
        """
        Return a copy of `document` with the flattened array under `as_field`.

        Parameters
        ----------
        document :
            The nested document to flatten. It is not modified.
        as_field :
            The field to store the flattened array in.

        Returns
        -------
        :
            A shallow copy of `document` with `as_field` set.
        """
        return {**document, as_field: self.descend(document)}

    def to_expression(self, serializer: Serializer | None = None) -> Any:
        """
        Lower this plan to an expression for an external evaluator.

        Parameters
        ----------
        serializer :
            The serializer to use. Defaults to a MongoDB
            [AggregationExpression][graph_descend.serializers.AggregationExpression].

        Returns
        -------
        :
            The lowered expression.
        """
        return (serializer or AggregationExpression()).lower(self)

    def stage(
        self, as_field: str, serializer: Serializer | None = None
    ) -> dict[str, Any]:
        """
        Return a `$set` pipeline stage storing the flattened array in `as_field`.

        Parameters
        ----------
        as_field :
            The field to store the flattened array in.
        serializer :
            The serializer to use for the expression.

        Returns
        -------
        :
            The aggregation pipeline stage.
        """
        return {"$set": {as_field: self.to_expression(serializer)}}


def build(
    connect_to_field: str = DEFAULT_CONNECT_TO_FIELD,
    start_with: str | None = None,
    max_elements: int = DEFAULT_MAX_ELEMENTS,
    omit_fields: Iterable[str] = (),
    max_depth: int = MAX_DEPTH_LIMIT,
    show_schema: bool = False,
) -> Plan:
    """
    Build a plan for flattening nested documents.

    Parameters
    ----------
    connect_to_field :
        Field in each sub-document holding the array of child sub-documents.
    start_with :
        Field at the top level holding the first array of children. Defaults
        to `connect_to_field`.
    max_elements :
        Maximum number of sub-documents to emit before the overrun marker.
    omit_fields :
        Fields to remove from every emitted sub-document.
    max_depth :
        Maximum depth to descend, limited to `[0, 100]`.
    show_schema :
        Whether to include the field types of each sub-document.

    Returns
    -------
    :
        The plan.

    Examples
    --------
    ```
    plan = build("children", start_with="properties", max_elements=50)
    flattened = plan(document)
    stage = plan.stage("flattened")
    ```
    """
    return Plan(
        connect_to_field=connect_to_field,
        start_with=start_with,
        max_elements=max_elements,
        omit_fields=omit_fields,  # type: ignore[arg-type]
        max_depth=max_depth,
        show_schema=show_schema,
    )

"""Runtime type tagging for document values."""

import datetime
import decimal
import re
from collections.abc import Mapping, Sequence
from typing import Any

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class _Missing:
    """Marker for a field that is absent (as opposed to present but `None`)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def is_array(value: Any) -> bool:
    """Return true if `value` holds a sequence of elements (not a string)."""
    return isinstance(value, Sequence) and not isinstance(
        value, str | bytes | bytearray
    )


def is_document(value: Any) -> bool:
    """Return true if `value` is a (sub-)document."""
    return isinstance(value, Mapping)


def type_tag(value: Any) -> str:
    """
    Return the aggregation `$type` name describing `value`.

    Parameters
    ----------
    value :
        Any value found in a document.

    Returns
    -------
    :
        The type name, e.g. `"string"`, `"int"` or `"object"`. Values with no
        matching BSON type are tagged with their Python class name.
    """
    if value is MISSING:
        return "missing"
    if value is None:
        return "null"
    # bool must come before int
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int" if INT32_MIN <= value <= INT32_MAX else "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, decimal.Decimal):
        return "decimal"
    if isinstance(value, str):
        return "string"
    if is_document(value):
        return "object"
    if is_array(value):
        return "array"
    if isinstance(value, bytes | bytearray):
        return "binData"
    if isinstance(value, datetime.datetime):
        return "date"
    if isinstance(value, re.Pattern):
        return "regex"
    if type(value).__name__ == "ObjectId":
        return "objectId"
    return type(value).__name__

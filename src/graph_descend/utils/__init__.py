"""Shared helpers for traversal, lowering and evaluation."""

from .type_tags import MISSING, is_array, is_document, type_tag

__all__ = [
    "MISSING",
    "is_array",
    "is_document",
    "type_tag",
]

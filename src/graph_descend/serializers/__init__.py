"""
Serializers lower plans into expressions for external evaluators.

The bundled [AggregationExpression][graph_descend.serializers.AggregationExpression]
produces a MongoDB aggregation expression.
"""

from .aggregation import AggregationExpression
from .base import Serializer

__all__ = [
    "AggregationExpression",
    "Serializer",
]

"""Defines the base class for plan serializers."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from graph_descend.plan import Plan


class Serializer(abc.ABC):
    """
    Base class for lowering a plan into an external expression grammar.

    A serializer turns the parameters of a
    [Plan][graph_descend.Plan] into an expression that an external evaluator
    can run against each document, producing the same records as calling the
    plan directly.
    """

    @abc.abstractmethod
    def lower(self, plan: Plan) -> Any:
        """
        Lower `plan` to an expression.

        Parameters
        ----------
        plan :
            The plan to lower.

        Returns
        -------
        :
            The expression. Its structure depends on the target evaluator.
        """
        ...

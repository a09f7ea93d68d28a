"""Resolves the current and next position of a conversation in a NodeGraph."""

import logging

from graphdialog.compiler.graph import NodeGraph
from graphdialog.core.errors import NavigationError, NavigationErrorReason
from graphdialog.core.expression import ExpressionEvaluator
from graphdialog.core.interfaces import RuleEvaluator
from graphdialog.core.state import SessionState
from graphdialog.core.types import Node

logger = logging.getLogger(__name__)


class Navigator:
    """Position resolution over one compiled graph.

    Args:
        graph: Compiled graph (or block) the session moves through
        evaluator: Evaluates scenario conditions (defaults to ExpressionEvaluator)
    """

    def __init__(self, graph: NodeGraph, evaluator: RuleEvaluator | None = None) -> None:
        self.graph = graph
        self.evaluator = evaluator or ExpressionEvaluator()

    def get_current_node(self, state: SessionState) -> Node:
        """
        Get the node the session is positioned on.

        Falls back to the graph root (recording it) when no position is set.

        Raises:
            NavigationError: If the recorded id does not exist in the graph.
        """
        if not state.current_node_id:
            if self.graph.root_id is None:
                raise NavigationError(
                    f"Graph '{self.graph.id}' has no root node; run one of its blocks",
                    reason=NavigationErrorReason.STALE_POSITION,
                    graph_id=self.graph.id,
                )
            root = self.graph.root
            state.current_node_id = root.id
            return root

        node = self.graph.get(state.current_node_id)
        if node is None:
            raise NavigationError(
                f"Node '{state.current_node_id}' not found in graph '{self.graph.id}'",
                reason=NavigationErrorReason.STALE_POSITION,
                node_id=state.current_node_id,
                graph_id=self.graph.id,
            )
        return node

    def get_next_node(self, state: SessionState, override_id: str | None = None) -> Node | None:
        """
        Resolve and record the next position. None means the graph is done.

        Precedence: last matching scenario, then a resolvable override, then
        the first child step, then the next sibling walking up the parents.

        Raises:
            NavigationError: On a stale position or an unevaluable condition.
        """
        current = self.get_current_node(state)
        next_node = self._match_scenarios(current, state)

        if override_id:
            override = self.graph.get(override_id)
            if override is not None:
                logger.debug(
                    f"Override to '{override_id}' from '{current.id}'",
                    extra={"session_id": state.session_id},
                )
                next_node = override
            else:
                logger.warning(
                    f"Override node '{override_id}' not found, continuing with normal navigation",
                    extra={"session_id": state.session_id, "override_id": override_id},
                )

        if next_node is None and current.step_ids:
            next_node = self.graph.get(current.step_ids[0])

        walker: Node | None = current
        while next_node is None and walker is not None:
            next_node = self.graph.get(walker.next_id)
            walker = self.graph.get(walker.parent_id)

        logger.debug(
            f"Next node: [current: {current.id}, next: {next_node.id if next_node else None}]",
            extra={"session_id": state.session_id},
        )
        state.current_node_id = next_node.id if next_node else None
        return next_node

    def _match_scenarios(self, current: Node, state: SessionState) -> Node | None:
        """Scan scenarios in order; the last truthy match wins."""
        match: Node | None = None
        for scenario in current.scenarios:
            if not scenario.condition or not scenario.condition.strip():
                continue
            try:
                matched = self.evaluator.evaluate(scenario.condition, state.variables)
            except Exception as e:
                raise NavigationError(
                    f"Cannot evaluate condition '{scenario.condition}' on node '{current.id}': {e}",
                    reason=NavigationErrorReason.CONDITION_FAILED,
                    node_id=current.id,
                    condition=scenario.condition,
                ) from e
            if matched:
                target = self.graph.get(scenario.target_id)
                if target is not None:
                    match = target
        return match

"""Guard against turns that never suspend."""

import logging
from collections import deque

from graphdialog.core.errors import NavigationError, NavigationErrorReason

logger = logging.getLogger(__name__)


class TurnLoopGuard:
    """Counts node visits within one turn and stops runaway loops.

    A graph whose scenarios route back onto already visited nodes without any
    prompt in between would otherwise spin forever inside a single turn.
    """

    def __init__(self, max_steps: int = 100, max_history: int = 10):
        """Initialize the guard.

        Args:
            max_steps: Maximum node visits allowed in one turn
            max_history: Number of recent node ids kept for the error report
        """
        self.max_steps = max_steps
        self.steps = 0
        self.history: deque[str] = deque(maxlen=max_history)

    def visit(self, node_id: str) -> None:
        """Record a node visit.

        Raises:
            NavigationError: When the turn exceeds ``max_steps`` visits.
        """
        self.steps += 1
        self.history.append(node_id)
        if self.steps > self.max_steps:
            recent = list(self.history)
            logger.error(
                f"Turn exceeded {self.max_steps} steps without suspending: {recent}",
                extra={"recent_nodes": recent},
            )
            raise NavigationError(
                f"Turn exceeded {self.max_steps} steps without suspending",
                reason=NavigationErrorReason.TURN_LIMIT,
                recent_nodes=recent,
            )

"""Rollback ledger: compensating actions replayed in reverse on failure."""

from dataclasses import dataclass
from typing import Callable, List

from ..core.log import get_logger, log_event

logger = get_logger(__name__)


@dataclass(frozen=True)
class RollbackAction:
    """One compensating action registered after its side effect happened."""

    description: str
    operation: Callable[[], None]


class RollbackLedger:
    """Ordered list of compensating actions owned by one workflow.

    execute_all() and discard() both drain the ledger, so actions never fire
    twice.
    """

    def __init__(self) -> None:
        self._actions: List[RollbackAction] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def descriptions(self) -> List[str]:
        return [action.description for action in self._actions]

    def push(self, description: str, operation: Callable[[], None]) -> None:
        self._actions.append(RollbackAction(description, operation))
        logger.debug("Registered rollback action: %s", description)

    def execute_all(self) -> List[str]:
        """Run every action newest-first, continuing past failures.

        Returns:
            Descriptions of the actions that raised
        """
        actions, self._actions = self._actions, []
        if not actions:
            return []

        log_event(logger, "rollback", f"Rolling back {len(actions)} action(s)")
        failures: List[str] = []
        for action in reversed(actions):
            logger.info("Rollback: %s", action.description)
            try:
                action.operation()
            except Exception as e:  # pylint: disable=broad-except
                # Best effort: keep undoing the remaining side effects
                logger.warning("Rollback action failed (%s): %s", action.description, e)
                failures.append(action.description)
        return failures

    def discard(self) -> None:
        """Forget all actions without running them (workflow succeeded)."""
        if self._actions:
            logger.debug("Discarding %d rollback action(s)", len(self._actions))
        self._actions = []

"""
Small forward-only state machine used by the lifecycle orchestrators.
"""

from enum import Enum
from typing import Generic, TypeVar

from numberops.shared.logging import get_logger

logger = get_logger(__name__)

S = TypeVar("S", bound=Enum)


class LifecycleStateMachine(Generic[S]):
    """Tracks one run of an orchestrator and rejects undeclared edges."""

    def __init__(self, name: str, initial: S, transitions: dict[S, frozenset[S]]) -> None:
        self._name = name
        self._transitions = transitions
        self.state: S = initial
        self.history: list[S] = [initial]

    def advance(self, new_state: S) -> None:
        if new_state not in self._transitions.get(self.state, frozenset()):
            raise RuntimeError(
                f"{self._name}: illegal transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "Lifecycle transition",
            extra={"machine": self._name, "from": self.state.value, "to": new_state.value},
        )
        self.state = new_state
        self.history.append(new_state)

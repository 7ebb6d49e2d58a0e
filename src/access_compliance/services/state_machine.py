"""Recompute run state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class RecomputeState(str, Enum):
    """Recompute run states."""

    IDLE = "idle"
    VALIDATING = "validating"
    AGGREGATING = "aggregating"
    APPLYING = "applying"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: str, to_state: str, reason: str | None = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RecomputeStateMachine:
    """State machine for one recompute run.

    Allowed transitions:
    - idle → validating
    - validating → aggregating
    - validating → failed (precondition)
    - aggregating → idle (empty result)
    - aggregating → applying
    - aggregating → failed (staging validation)
    - applying → idle (committed)
    - applying → failed
    - failed → rolled_back
    - failed / rolled_back → validating (next run)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RecomputeState.IDLE: [RecomputeState.VALIDATING],
        RecomputeState.VALIDATING: [RecomputeState.AGGREGATING, RecomputeState.FAILED],
        RecomputeState.AGGREGATING: [
            RecomputeState.IDLE,
            RecomputeState.APPLYING,
            RecomputeState.FAILED,
        ],
        RecomputeState.APPLYING: [RecomputeState.IDLE, RecomputeState.FAILED],
        RecomputeState.FAILED: [RecomputeState.ROLLED_BACK, RecomputeState.VALIDATING],
        RecomputeState.ROLLED_BACK: [RecomputeState.VALIDATING],
    }

    def __init__(self) -> None:
        self.state = RecomputeState.IDLE
        self.visited: list[RecomputeState] = [RecomputeState.IDLE]

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_state, [])
        return to_state in allowed

    @classmethod
    def validate_transition(cls, from_state: str, to_state: str) -> None:
        """Validate transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_state, to_state):
            allowed = cls.VALID_TRANSITIONS.get(from_state, [])
            raise InvalidTransitionError(
                from_state,
                to_state,
                f"Allowed: {', '.join(s.value for s in allowed) or 'none'}",
            )

    def advance(self, to_state: RecomputeState) -> None:
        """Move to ``to_state`` if allowed."""
        self.validate_transition(self.state, to_state)
        self.state = to_state
        self.visited.append(to_state)

    def begin_run(self) -> None:
        """Start a new run, forgetting the previous run's path."""
        self.advance(RecomputeState.VALIDATING)
        self.visited = [RecomputeState.VALIDATING]

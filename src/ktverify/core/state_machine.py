"""
ktverify State Machine Base

Table-driven state machine for auditable verification flows.

A subclass declares its flow as data:
- INITIAL_STATE: where every run starts
- TRANSITIONS: (state, event type) -> next state
- INVARIANTS: (name, fn(state, context) -> bool) checked before commit

Events carry their own context update as ``apply(context) -> context``, so
the table holds no callables. Every committed transition is recorded with
the event's fields for audit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Generic, List, Mapping, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from ktverify.core.exceptions import InvariantViolation

logger = structlog.get_logger()

S = TypeVar("S", bound=Enum)  # State type
C = TypeVar("C")  # Context type

InvariantFn = Callable[[Any, Any], bool]


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S]):
    """Audit record of one committed transition."""

    from_state: S
    event_type: str
    to_state: S
    timestamp: datetime
    event_data: Dict[str, Any] = attrs.Factory(dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.name,
            "event_type": self.event_type,
            "to_state": self.to_state.name,
            "timestamp": self.timestamp.isoformat(),
            "event_data": self.event_data,
        }


@attrs.define
class StateMachineBase(Generic[S, C]):
    """
    One run of a declared flow.

    Usage:
        class UploadMachine(StateMachineBase[UploadState, UploadContext]):
            INITIAL_STATE = UploadState.PENDING
            TRANSITIONS = {
                (UploadState.PENDING, Uploaded): UploadState.DONE,
            }
            INVARIANTS = (("size_known_when_done", _size_known_when_done),)

        machine = UploadMachine(_context=UploadContext())
        machine.process_event(Uploaded(size=10))
    """

    INITIAL_STATE: ClassVar[Any]
    TRANSITIONS: ClassVar[Mapping[Tuple[Any, type], Any]] = {}
    INVARIANTS: ClassVar[Tuple[Tuple[str, InvariantFn], ...]] = ()

    _context: C = attrs.field(alias="_context")
    _state: S = attrs.field(default=None, alias="_state")
    _history: List[Transition[S]] = attrs.field(factory=list, alias="_history")
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")

    def __attrs_post_init__(self) -> None:
        if self._state is None:
            self._state = self.INITIAL_STATE

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    @classmethod
    def transition_names(cls) -> Dict[Tuple[str, str], str]:
        """The transition table by name, for auditing exported traces."""
        return {
            (state.name, event_type.__name__): target.name
            for (state, event_type), target in cls.TRANSITIONS.items()
        }

    def process_event(self, event: Any) -> Result[S, str]:
        """
        Apply event if the table allows it from the current state.

        Returns:
            Success(new_state), or Failure(message) when the table has no
            entry for (state, type(event)); nothing changes in that case

        Raises:
            InvariantViolation: If the resulting (state, context) breaks an
                invariant; the transition is not committed
        """
        event_type = type(event).__name__
        next_state = self.TRANSITIONS.get((self._state, type(event)))
        if next_state is None:
            self._logger.warning(
                "invalid_transition", current_state=self._state.name, event_type=event_type
            )
            return Failure(f"No transition for state {self._state.name} with event {event_type}")

        new_context = event.apply(self._context)
        for name, invariant in self.INVARIANTS:
            if not invariant(next_state, new_context):
                self._logger.error(
                    "invariant_violated",
                    invariant=name,
                    from_state=self._state.name,
                    to_state=next_state.name,
                )
                raise InvariantViolation(
                    f"Invariant '{name}' violated entering {next_state.name}"
                )

        self._history.append(
            Transition(
                from_state=self._state,
                event_type=event_type,
                to_state=next_state,
                timestamp=datetime.now(timezone.utc),
                event_data=attrs.asdict(event) if attrs.has(type(event)) else {},
            )
        )
        self._logger.debug(
            "state_transition",
            from_state=self._state.name,
            to_state=next_state.name,
            event_type=event_type,
        )
        self._state = next_state
        self._context = new_context
        return Success(next_state)

    def get_trace(self) -> List[Transition[S]]:
        """Copy of the committed transitions, oldest first."""
        return list(self._history)

    def visited_states(self) -> List[str]:
        """Names of every state passed through, initial state first."""
        return [self.INITIAL_STATE.name] + [t.to_state.name for t in self._history]


def verify_trace(
    trace: List[Transition],
    allowed_transitions: Dict[Tuple[str, str], str],
) -> List[str]:
    """
    Check a trace against a table of allowed transitions by name.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    for i, t in enumerate(trace):
        key = (t.from_state.name, t.event_type)
        expected = allowed_transitions.get(key)
        if expected is None:
            errors.append(
                f"Transition {i}: Invalid transition {t.from_state.name} "
                f"--[{t.event_type}]--> {t.to_state.name}"
            )
        elif expected != t.to_state.name:
            errors.append(
                f"Transition {i}: Expected {t.from_state.name} "
                f"--[{t.event_type}]--> {expected}, got {t.to_state.name}"
            )
    return errors

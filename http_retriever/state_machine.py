"""Retrieval state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog

from http_retriever.constants import (
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_OK,
    REDIRECT_STATUS_CODES,
)


logger = structlog.get_logger()


class ResponseOutcome(Enum):
    """Outcome of a single connection attempt, derived from its status code."""

    SUCCESS = auto()
    REDIRECT = auto()
    NOT_FOUND = auto()
    OTHER_FAILURE = auto()


class RetrievalState(Enum):
    """Retrieval states.

    State transitions:
        CONNECTING -> SUCCESS: 200 received, body stream handed to caller
        CONNECTING -> FOLLOW_REDIRECT: 301/302/303 received
        CONNECTING -> FAILED: 404 or any other status
        FOLLOW_REDIRECT -> CONNECTING: Location resolved, next hop opened
        FOLLOW_REDIRECT -> FAILED: Redirect bound exceeded or bad Location
    """

    CONNECTING = auto()
    SUCCESS = auto()
    FOLLOW_REDIRECT = auto()
    FAILED = auto()


_OUTCOME_STATES: dict[ResponseOutcome, RetrievalState] = {
    ResponseOutcome.SUCCESS: RetrievalState.SUCCESS,
    ResponseOutcome.REDIRECT: RetrievalState.FOLLOW_REDIRECT,
    ResponseOutcome.NOT_FOUND: RetrievalState.FAILED,
    ResponseOutcome.OTHER_FAILURE: RetrievalState.FAILED,
}


def classify_status(status_code: int) -> ResponseOutcome:
    """Map a numeric HTTP status to a response outcome.

    Args:
        status_code: HTTP status code.

    Returns:
        The outcome the retriever acts on.
    """
    if status_code == HTTP_STATUS_OK:
        return ResponseOutcome.SUCCESS
    if status_code in REDIRECT_STATUS_CODES:
        return ResponseOutcome.REDIRECT
    if status_code == HTTP_STATUS_NOT_FOUND:
        return ResponseOutcome.NOT_FOUND
    return ResponseOutcome.OTHER_FAILURE


class RetrievalStateError(Exception):
    """Raised when an invalid retrieval state transition is attempted."""

    def __init__(self, from_state: RetrievalState, to_state: RetrievalState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid retrieval state transition: {from_state.name} -> {to_state.name}"
        )


class RetrievalStateMachine:
    """State machine for one top-level retrieval.

    Enforces valid state transitions across redirect hops. Logs invariant
    violations when invalid transitions are attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[RetrievalState, set[RetrievalState]]] = {
        RetrievalState.CONNECTING: {
            RetrievalState.SUCCESS,
            RetrievalState.FOLLOW_REDIRECT,
            RetrievalState.FAILED,
        },
        RetrievalState.FOLLOW_REDIRECT: {
            RetrievalState.CONNECTING,
            RetrievalState.FAILED,
        },
        RetrievalState.SUCCESS: set(),  # Terminal state
        RetrievalState.FAILED: set(),  # Terminal state
    }

    def __init__(self, url: str) -> None:
        """Initialize the state machine in CONNECTING state.

        Args:
            url: Original URL, for logging.
        """
        self._state = RetrievalState.CONNECTING
        self._outcome: ResponseOutcome | None = None
        self._log = logger.bind(component="retriever", url=url)

    @property
    def state(self) -> RetrievalState:
        """Get the current state."""
        return self._state

    @property
    def outcome(self) -> ResponseOutcome | None:
        """Get the outcome of the most recent response."""
        return self._outcome

    def can_transition(self, to_state: RetrievalState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RetrievalState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RetrievalStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RetrievalStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "retrieval_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def on_response(self, status_code: int) -> RetrievalState:
        """Advance the machine from a received status code.

        Args:
            status_code: Status of the current connection attempt.

        Returns:
            The new state.
        """
        self._outcome = classify_status(status_code)
        self.transition(_OUTCOME_STATES[self._outcome])
        return self._state

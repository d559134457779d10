"""Trade and ledger state machine guards.

Uses python-statemachine to declare the legal transitions for trades and for
ledger transactions. The machines are the single source of truth for which
statuses an operation may start from: repositories never read-then-write,
they issue one conditional UPDATE whose ``status IN (...)`` predicate is
derived from the machine with ``source_statuses``.

Trade transition table:
    proposal              -> matched     (accept)
    matched | committed   -> committed   (commit)
    committed             -> escrow      (start_escrow)
    any non-final         -> completed   (complete)
    proposal | matched    -> cancelled   (cancel)
    proposal | matched | committed -> cancelled (admin_cancel)

Ledger transition table:
    pending               -> mempool     (submit)
    pending | mempool     -> confirmed   (confirm)
    pending | mempool     -> failed      (fail)
    confirmed             -> refunded    (refund)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from barter_exchange.domain.exceptions import InvalidStateTransitionError


def _event_id(event: Any) -> str:
    # python-statemachine >= 2.3 separates the event id from its display name
    return getattr(event, "id", None) or event.name


class _StatusMachineMixin:
    """Start a machine at a stored status string and expose it back as a string."""

    def __init__(self, current_status: str | None = None) -> None:
        valid_values = {s.value for s in self.states}
        if current_status is None:
            current_status = next(s.value for s in self.states if s.initial)
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value (matches the stored status column)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [_event_id(event) for event in self.allowed_events]


class TradeStateMachine(_StatusMachineMixin, StateMachine):
    """Guards the trade lifecycle.

    Usage:
        sm = TradeStateMachine("proposal")
        sm.accept()   # transitions to matched
        sm.status     # "matched"
    """

    # --- States ---
    proposal = State("Proposal", value="proposal", initial=True)
    matched = State("Matched", value="matched")
    committed = State("Committed", value="committed")
    escrow = State("Escrow", value="escrow")
    completed = State("Completed", value="completed", final=True)
    cancelled = State("Cancelled", value="cancelled", final=True)

    # --- Events / Transitions ---
    accept = proposal.to(matched)
    commit = matched.to(committed) | committed.to.itself()
    start_escrow = committed.to(escrow)
    complete = (
        proposal.to(completed)
        | matched.to(completed)
        | committed.to(completed)
        | escrow.to(completed)
    )
    cancel = proposal.to(cancelled) | matched.to(cancelled)
    admin_cancel = (
        proposal.to(cancelled) | matched.to(cancelled) | committed.to(cancelled)
    )


class TransactionStateMachine(_StatusMachineMixin, StateMachine):
    """Guards the lifecycle of a ledger transaction."""

    pending = State("Pending", value="pending", initial=True)
    mempool = State("Mempool", value="mempool")
    confirmed = State("Confirmed", value="confirmed")
    failed = State("Failed", value="failed", final=True)
    refunded = State("Refunded", value="refunded", final=True)

    submit = pending.to(mempool)
    confirm = pending.to(confirmed) | mempool.to(confirmed)
    fail = pending.to(failed) | mempool.to(failed)
    refund = confirmed.to(refunded)


@lru_cache(maxsize=None)
def source_statuses(machine_cls: type[StateMachine], event_name: str) -> tuple[str, ...]:
    """Return every status from which ``event_name`` may fire, in declaration order.

    Raises:
        ValueError: If no state of the machine accepts the event.
    """
    sources = tuple(
        state.value
        for state in machine_cls.states
        if event_name in machine_cls(state.value).get_allowed_events()
    )
    if not sources:
        raise ValueError(f"Unknown event '{event_name}' for {machine_cls.__name__}")
    return sources


@lru_cache(maxsize=None)
def non_final_statuses(machine_cls: type[StateMachine]) -> tuple[str, ...]:
    """Return the statuses of the machine that are not final."""
    return tuple(state.value for state in machine_cls.states if not state.final)


def validate_transition(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Fire ``event_name`` on a temporary machine and return the new status.

    Raises:
        InvalidStateTransitionError: If the event is unknown or illegal from
            ``current_status``.
        ValueError: If ``current_status`` is not a known state.
    """
    sm = machine_cls(current_status)
    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise InvalidStateTransitionError(current_status, event_name)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return sm.status

"""
Tip Record Lifecycle
====================

Finite state machine governing tip status transitions. Every status change
MUST go through ``validate_transition`` before being persisted.

State machine overview::

    pending --> completed   (result code 0, carries the M-Pesa receipt)
    pending --> failed      (any non-zero result code)

Both terminal states are final; a tip never re-enters ``pending``.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.models.tip import TipStatus


# ---------------------------------------------------------------------------
# Transition result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[TipStatus, set[TipStatus]] = {
    TipStatus.PENDING: {
        TipStatus.COMPLETED,
        TipStatus.FAILED,
    },
    TipStatus.COMPLETED: set(),
    TipStatus.FAILED: set(),
}

TERMINAL_STATUSES: frozenset[TipStatus] = frozenset({
    TipStatus.COMPLETED,
    TipStatus.FAILED,
})

# Daraja result code for a successful STK push
SUCCESS_RESULT_CODE = 0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: TipStatus | str,
    new_status: TipStatus | str,
) -> TransitionResult:
    """Validate whether a tip status transition is allowed.

    Returns a ``TransitionResult`` with ``allowed=True`` if the transition
    is permitted, or ``allowed=False`` with a human-readable ``reason``.
    """
    current = TipStatus(current_status)
    target = TipStatus(new_status)

    allowed_targets = VALID_TRANSITIONS.get(current, set())
    if target not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current.value}' -> '{target.value}'. "
                f"Allowed transitions from '{current.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            ),
        )
    return TransitionResult(allowed=True)


def status_for_result_code(result_code: int) -> TipStatus:
    """Map a gateway result code to the terminal status it implies."""
    if result_code == SUCCESS_RESULT_CODE:
        return TipStatus.COMPLETED
    return TipStatus.FAILED


def is_terminal(status: TipStatus | str) -> bool:
    return TipStatus(status) in TERMINAL_STATUSES

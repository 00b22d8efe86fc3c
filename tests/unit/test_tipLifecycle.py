"""
Unit tests for the Tip Record Lifecycle.

Tests the status state machine and the mapping from gateway result codes to
terminal statuses.
"""

import pytest

from src.models.tip import TipStatus
from src.services.tipLifecycle import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    is_terminal,
    status_for_result_code,
    validate_transition,
)


# ---------------------------------------------------------------------------
# Valid state transitions
# ---------------------------------------------------------------------------


class TestValidTransitions:

    def test_pending_to_completed(self):
        result = validate_transition(TipStatus.PENDING, TipStatus.COMPLETED)
        assert result.allowed is True
        assert result.reason is None

    def test_pending_to_failed(self):
        result = validate_transition(TipStatus.PENDING, TipStatus.FAILED)
        assert result.allowed is True

    def test_accepts_raw_strings(self):
        """Statuses are stored as strings on the ORM model."""
        result = validate_transition("pending", "completed")
        assert result.allowed is True


# ---------------------------------------------------------------------------
# Invalid transitions
# ---------------------------------------------------------------------------


class TestInvalidTransitions:

    @pytest.mark.parametrize("terminal", [TipStatus.COMPLETED, TipStatus.FAILED])
    @pytest.mark.parametrize("target", list(TipStatus))
    def test_terminal_states_are_final(self, terminal, target):
        result = validate_transition(terminal, target)
        assert result.allowed is False
        assert "none" in result.reason

    def test_pending_to_pending_rejected(self):
        result = validate_transition(TipStatus.PENDING, TipStatus.PENDING)
        assert result.allowed is False
        assert "'pending' -> 'pending'" in result.reason

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            validate_transition("pending", "refunded")


# ---------------------------------------------------------------------------
# Table integrity and helpers
# ---------------------------------------------------------------------------


class TestTransitionTable:

    def test_every_status_has_entry(self):
        assert set(VALID_TRANSITIONS) == set(TipStatus)

    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert VALID_TRANSITIONS[status] == set()

    def test_is_terminal(self):
        assert is_terminal("completed") is True
        assert is_terminal(TipStatus.FAILED) is True
        assert is_terminal("pending") is False


class TestResultCodes:

    def test_zero_is_completed(self):
        assert status_for_result_code(0) == TipStatus.COMPLETED

    @pytest.mark.parametrize("code", [1, 1032, 1037, 2001])
    def test_non_zero_is_failed(self, code):
        assert status_for_result_code(code) == TipStatus.FAILED

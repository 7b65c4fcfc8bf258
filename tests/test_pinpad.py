"""
Unit tests for the lock screen PIN pad.
"""

import pytest

from pinpad import ERROR_RESET_MS, PinPad, is_valid_pin, sanitize_pin, should_lock


def _type(pad, digits):
    return [pad.press(d) for d in digits]


class TestPinPad:
    """Tests for PIN entry and comparison."""

    def test_matching_pin_unlocks(self):
        """Should unlock when the fourth digit matches."""
        pad = PinPad("1234")
        assert _type(pad, "1234") == [None, None, None, True]
        assert pad.unlocked is True

    def test_mismatch_sets_error_then_clears(self):
        """Should flag an error and reset input once cleared."""
        pad = PinPad("1234")
        assert _type(pad, "1111")[-1] is False
        assert pad.error is True
        assert pad.entered == "1111"
        assert ERROR_RESET_MS == 1000
        pad.clear_error()
        assert pad.error is False
        assert pad.entered == ""
        assert _type(pad, "1234")[-1] is True

    def test_input_ignored_while_in_error(self):
        """Should not accept digits until the error clears."""
        pad = PinPad("1234")
        _type(pad, "9999")
        assert pad.press("1") is None
        assert pad.entered == "9999"

    def test_non_digits_ignored(self):
        """Should ignore anything but single digits."""
        pad = PinPad("1234")
        assert pad.press("a") is None
        assert pad.press("12") is None
        assert pad.entered == ""

    def test_backspace(self):
        """Should drop the last digit."""
        pad = PinPad("123456")
        _type(pad, "123")
        pad.backspace()
        assert pad.entered == "12"

    def test_input_length_follows_pin(self):
        """Should compare only once the configured length is reached."""
        pad = PinPad("123456")
        assert _type(pad, "1234") == [None] * 4
        assert _type(pad, "56") == [None, True]


class TestPinHelpers:
    """Tests for PIN sanitizing and lock decisions."""

    @pytest.mark.parametrize(
        "raw, expected",
        [("12a3", "123"), ("1234567", "123456"), ("", ""), (" 9-8 ", "98")],
    )
    def test_sanitize(self, raw, expected):
        """Should keep at most six digits."""
        assert sanitize_pin(raw) == expected

    @pytest.mark.parametrize("pin, valid", [("1234", True), ("123456", True), ("123", False), (None, False), ("12a4", False)])
    def test_is_valid_pin(self, pin, valid):
        """Should accept four to six digits."""
        assert is_valid_pin(pin) is valid

    def test_should_lock(self):
        """Should lock only when enabled with a valid PIN."""
        assert should_lock({"lockEnabled": True, "lockPin": "1234"}) is True
        assert should_lock({"lockEnabled": False, "lockPin": "1234"}) is False
        assert should_lock({"lockEnabled": True, "lockPin": None}) is False
        assert should_lock({"lockEnabled": True, "lockPin": "12"}) is False

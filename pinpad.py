import re
from typing import Any, Optional


ERROR_RESET_MS = 1000
PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6

_NON_DIGITS = re.compile(r"\D")


def sanitize_pin(raw: str) -> str:
    return _NON_DIGITS.sub("", raw)[:PIN_MAX_LENGTH]


def is_valid_pin(pin: Optional[str]) -> bool:
    return bool(pin) and pin.isdigit() and PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH


def should_lock(settings: dict[str, Any]) -> bool:
    return bool(settings.get("lockEnabled")) and is_valid_pin(settings.get("lockPin"))


class PinPad:
    """Lock screen input. The PIN is compared as plaintext."""

    def __init__(self, correct_pin: str) -> None:
        self.correct_pin = correct_pin
        self.entered = ""
        self.error = False
        self.unlocked = False

    def press(self, key: str) -> Optional[bool]:
        """Returns True on unlock, False on a mismatch, None while incomplete."""
        if self.error or self.unlocked or not (len(key) == 1 and key.isdigit()):
            return None
        if len(self.entered) >= len(self.correct_pin):
            return None
        self.entered += key
        if len(self.entered) < len(self.correct_pin):
            return None
        if self.entered == self.correct_pin:
            self.unlocked = True
            return True
        self.error = True
        return False

    def backspace(self) -> None:
        if not self.error:
            self.entered = self.entered[:-1]

    def clear_error(self) -> None:
        self.error = False
        self.entered = ""

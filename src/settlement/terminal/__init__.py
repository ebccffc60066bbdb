"""Card terminal factory.

Provides get_terminal() / set_terminal() to swap implementations:
- FakeTerminal for development and testing
- a hardware or cloud terminal adapter in production
"""

from settlement.terminal.fake_adapter import FakeTerminal
from settlement.terminal.port import PaymentTerminal

_current_terminal: PaymentTerminal | None = None


def get_terminal() -> PaymentTerminal:
    """Return the current card terminal. Defaults to FakeTerminal."""
    global _current_terminal
    if _current_terminal is None:
        _current_terminal = FakeTerminal()
    return _current_terminal


def set_terminal(terminal: PaymentTerminal) -> None:
    """Override the active card terminal (useful for tests)."""
    global _current_terminal
    _current_terminal = terminal


def reset_terminal() -> None:
    """Reset to default terminal."""
    global _current_terminal
    _current_terminal = None

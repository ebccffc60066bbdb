"""Customer directory factory.

Provides get_directory() / set_directory() to swap implementations.
Defaults to the in-memory FakeCustomerDirectory.
"""

from settlement.directory.fake_adapter import FakeCustomerDirectory
from settlement.directory.port import CustomerDirectory

_current_directory: CustomerDirectory | None = None


def get_directory() -> CustomerDirectory:
    """Return the current customer directory. Defaults to FakeCustomerDirectory."""
    global _current_directory
    if _current_directory is None:
        _current_directory = FakeCustomerDirectory()
    return _current_directory


def set_directory(directory: CustomerDirectory) -> None:
    """Override the active customer directory (useful for tests)."""
    global _current_directory
    _current_directory = directory


def reset_directory() -> None:
    """Reset to default directory."""
    global _current_directory
    _current_directory = None

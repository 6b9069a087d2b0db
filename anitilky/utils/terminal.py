"""Terminal Utilities Module."""

import locale
import os
import sys
from functools import lru_cache

import colorama

__all__ = ["supports_color", "supports_utf8"]


@lru_cache(maxsize=1)
def supports_utf8() -> bool:
    """Check if the terminal supports UTF-8 encoding.

    Returns:
        bool: True if stdout encodes UTF-8, False otherwise
    """
    encoding = sys.stdout.encoding or locale.getpreferredencoding(False)
    return encoding.lower().replace("-", "").startswith("utf")


@lru_cache(maxsize=1)
def supports_color() -> bool:
    """Check if the terminal supports ANSI color codes.

    Honors the ``NO_COLOR`` and ``FORCE_COLOR`` conventions before falling back to
    TTY detection. Windows consoles need either colorama's console fix or a modern
    terminal host.

    Returns:
        bool: True if the terminal supports color, False otherwise
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True

    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    if sys.platform == "win32":
        return (
            getattr(colorama, "fixed_windows_console", False)
            or "ANSICON" in os.environ
            or "WT_SESSION" in os.environ  # Windows Terminal
            or os.environ.get("TERM_PROGRAM") == "vscode"
        )

    return os.environ.get("TERM") != "dumb"

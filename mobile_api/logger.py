"""
Centralized logging utility for the Mobile API
Provides color-coded console output with consistent formatting
"""

import sys


class Colors:
    """256-colour ANSI codes, named after the kind of line they mark"""
    RESET = '\033[0m'
    OK = '\033[38;5;46m'
    FAIL = '\033[38;5;196m'
    WARN = '\033[38;5;208m'
    INFO = '\033[38;5;51m'
    DEBUG = '\033[38;5;214m'


class Logger:
    """
    Centralized logging with color support.

    Set ``Logger.enabled = False`` to silence all output (tests do this),
    and ``Logger.verbose = True`` to show debug lines.
    """

    enabled: bool = True
    verbose: bool = False

    @staticmethod
    def _emit(line: str, stream=None) -> None:
        if not Logger.enabled:
            return
        print(line, file=stream or sys.stdout, flush=True)

    @staticmethod
    def success(message: str) -> None:
        """Print success message with green checkmark"""
        Logger._emit(f"{Colors.OK}✓{Colors.RESET} {message}")

    @staticmethod
    def error(message: str) -> None:
        """Print error message with red X to stderr"""
        Logger._emit(f"{Colors.FAIL}✗{Colors.RESET} {message}", sys.stderr)

    @staticmethod
    def info(message: str) -> None:
        """Print info message with cyan color"""
        Logger._emit(f"{Colors.INFO}[INFO]{Colors.RESET} {message}")

    @staticmethod
    def warning(message: str) -> None:
        """Print warning message with yellow color"""
        Logger._emit(f"{Colors.WARN}[WARNING]{Colors.RESET} {message}")

    @staticmethod
    def debug(tag: str, message: str) -> None:
        """Print debug message with orange tag, only in verbose mode"""
        if Logger.verbose:
            Logger._emit(f"{Colors.DEBUG}[{tag}]{Colors.RESET} {message}")

    @staticmethod
    def section(title: str) -> None:
        Logger._emit(f"\n{Colors.INFO}=== {title} ==={Colors.RESET}")

    @staticmethod
    def header(text: str) -> None:
        """Print major header with separator"""
        Logger._emit(f"{Colors.INFO}{'='*60}{Colors.RESET}")
        Logger._emit(f"{Colors.INFO}{text}{Colors.RESET}")
        Logger._emit(f"{Colors.INFO}{'='*60}{Colors.RESET}")

    @staticmethod
    def substep(message: str) -> None:
        Logger._emit(f"   {message}")


def key_hint(hex_key: str) -> str:
    """Shorten a hex key for log output, never log full key material"""
    return f"{hex_key[:8]}..."

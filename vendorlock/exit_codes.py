"""
Process exit codes for vendorlock.

Usage errors come from click (2). Failures that stop a manifest from
being written use the sysexits range so scripts can tell a bad lock
from an unreachable repository.
"""

GENERAL_ERROR = 1
API_ERROR = 65           # Repository metadata could not be resolved
CONFIG_ERROR = 66        # Unreadable or invalid config file
PERMISSION_ERROR = 67    # Output or lock file not accessible
DATA_ERROR = 70          # Malformed lock, unsupported source, missing checksum
INTERRUPTED = 130        # SIGINT

# Fallbacks for exceptions that carry no exit code of their own
EXCEPTION_EXIT_CODES = {
    'PermissionError': PERMISSION_ERROR,
    'IsADirectoryError': PERMISSION_ERROR,
    'UnicodeDecodeError': DATA_ERROR,
    'TOMLDecodeError': DATA_ERROR,
    'ValueError': DATA_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """Exit code for exc: its own exit_code attribute, else by exception type."""
    exit_code = getattr(exc, 'exit_code', None)
    if isinstance(exit_code, int):
        return exit_code
    return EXCEPTION_EXIT_CODES.get(type(exc).__name__, GENERAL_ERROR)


class CommandError(Exception):
    """An error a command reports and exits on, with its exit code attached."""

    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(CommandError):

    def __init__(self, message: str):
        super().__init__(message, exit_code=CONFIG_ERROR)

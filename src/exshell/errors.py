"""Command error taxonomy and user-facing messages."""

from enum import IntEnum


class CmdError(IntEnum):
    """Failure codes returned by command dispatch (always negative)."""

    LOOP = -1
    NO_MEM = -2
    TOO_FEW_ARGS = -3
    TRAILING_CHARS = -4
    INCORRECT_NAME = -5
    NEED_BANG = -6
    NO_BUILTIN_REDEFINE = -7
    INVALID_CMD = -8
    NO_BANG_ALLOWED = -9
    NO_RANGE_ALLOWED = -10
    NO_QMARK_ALLOWED = -11
    INVALID_RANGE = -12
    NO_SUCH_UDF = -13
    UDF_IS_AMBIGUOUS = -14
    ZERO_COUNT = -15
    INVALID_ARG = -16
    CUSTOM = -17


# INVALID_RANGE and CUSTOM are absent: whoever failed already said why.
ERROR_MESSAGES: dict[CmdError, str] = {
    CmdError.LOOP: "Loop in commands",
    CmdError.NO_MEM: "Unable to allocate enough memory",
    CmdError.TOO_FEW_ARGS: "Too few arguments",
    CmdError.TRAILING_CHARS: "Trailing characters",
    CmdError.INCORRECT_NAME: "Incorrect command name",
    CmdError.NEED_BANG: "Add bang to force",
    CmdError.NO_BUILTIN_REDEFINE: "Can't redefine builtin command",
    CmdError.INVALID_CMD: "Invalid command name",
    CmdError.NO_BANG_ALLOWED: "No ! is allowed",
    CmdError.NO_RANGE_ALLOWED: "No range is allowed",
    CmdError.NO_QMARK_ALLOWED: "No ? is allowed",
    CmdError.NO_SUCH_UDF: "No such user defined command",
    CmdError.UDF_IS_AMBIGUOUS: "Ambiguous use of user-defined command",
    CmdError.ZERO_COUNT: "Zero count",
    CmdError.INVALID_ARG: "Invalid argument",
}

SILENT_ERRORS = frozenset({CmdError.INVALID_RANGE, CmdError.CUSTOM})


def error_message(code: int) -> str | None:
    """Map a negative dispatch result to its status bar message.

    Returns None for codes whose message has already been shown elsewhere.
    """
    try:
        error = CmdError(code)
    except ValueError:
        return "Unknown error"
    if error in SILENT_ERRORS:
        return None
    return ERROR_MESSAGES[error]


class CommandError(Exception):
    """Raised while parsing or running a command; carries a CmdError code."""

    def __init__(self, code: CmdError, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(code, code.name))
        self.code = code
        # Only an explicit message; silent codes are shown when it is set.
        self.message = message

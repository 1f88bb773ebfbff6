"""Classify a position on the command-line by the quoting around it.

The same classification drives two decisions: whether a bar splits the
command-line into sub-commands and how text inserted at a position (for
example by completion) needs to be escaped.
"""

from enum import Enum, auto
from typing import TYPE_CHECKING

from exshell.registry import CmdId

if TYPE_CHECKING:
    from exshell.registry import Registry

WHITESPACE_SEP = " "

_SHELL_SPECIAL = frozenset(" \t\n\\'\"|&;<>()$`*?[]{}#!~")


class LinePos(Enum):
    """Result of scanning a command-line up to a position."""

    OUT_OF_ARG = auto()
    ESCAPE_PENDING = auto()  # a backslash is the last scanned character
    NO_QUOTING = auto()
    S_QUOTING = auto()
    D_QUOTING = auto()
    R_QUOTING = auto()


class CmdLineLocation(Enum):
    OUT_OF_ARG = auto()
    NO_QUOTING = auto()
    S_QUOTING = auto()
    D_QUOTING = auto()
    R_QUOTING = auto()


class _State(Enum):
    BEGIN = auto()
    NO_QUOTING = auto()
    S_QUOTING = auto()
    D_QUOTING = auto()
    R_QUOTING = auto()


_UNTERMINATED = {
    _State.S_QUOTING: LinePos.S_QUOTING,
    _State.D_QUOTING: LinePos.D_QUOTING,
    _State.R_QUOTING: LinePos.R_QUOTING,
}

_LOCATIONS = {
    LinePos.OUT_OF_ARG: CmdLineLocation.OUT_OF_ARG,
    LinePos.ESCAPE_PENDING: CmdLineLocation.NO_QUOTING,
    LinePos.NO_QUOTING: CmdLineLocation.NO_QUOTING,
    LinePos.S_QUOTING: CmdLineLocation.S_QUOTING,
    LinePos.D_QUOTING: CmdLineLocation.D_QUOTING,
    LinePos.R_QUOTING: CmdLineLocation.R_QUOTING,
}


def line_pos(line: str, end: int, sep: str = WHITESPACE_SEP, regex_quoting: bool = False) -> LinePos:
    """Determine what kind of text line[end] belongs to.

    With the whitespace separator the first word is the command name, so a
    position counts as inside an argument only after a separator was crossed.
    With any other separator (s/pat/sub/) only the first two separated parts
    are arguments.  A trailing "&" does not start a word.  An unterminated
    quote still reports its quoting kind.
    """
    state = _State.BEGIN
    count = 0
    i = 0
    while i < end:
        ch = line[i]
        match state:
            case _State.BEGIN:
                if sep == WHITESPACE_SEP and ch == "'":
                    state = _State.S_QUOTING
                elif sep == WHITESPACE_SEP and ch == '"':
                    state = _State.D_QUOTING
                elif sep == WHITESPACE_SEP and ch == "/" and regex_quoting:
                    state = _State.R_QUOTING
                elif ch == "&" and i == end - 1:
                    pass
                elif ch != sep:
                    state = _State.NO_QUOTING
            case _State.NO_QUOTING:
                if ch == sep:
                    state = _State.BEGIN
                    count += 1
                elif ch == "'":
                    state = _State.S_QUOTING
                elif ch == '"':
                    state = _State.D_QUOTING
                elif ch == "\\":
                    i += 1
                    if i == end:
                        return LinePos.ESCAPE_PENDING
            case _State.S_QUOTING:
                if ch == "'":
                    state = _State.BEGIN
            case _State.D_QUOTING | _State.R_QUOTING:
                closing = '"' if state is _State.D_QUOTING else "/"
                if ch == closing:
                    state = _State.BEGIN
                elif ch == "\\":
                    i += 1
                    if i == end:
                        return LinePos.ESCAPE_PENDING
        i += 1

    if state is _State.NO_QUOTING:
        if sep == WHITESPACE_SEP:
            return LinePos.NO_QUOTING if count > 0 else LinePos.OUT_OF_ARG
        if 0 < count < 3:
            return LinePos.NO_QUOTING
    elif state is not _State.BEGIN:
        return _UNTERMINATED[state]
    elif sep != WHITESPACE_SEP and count > 0 and line[end : end + 1] != sep:
        return LinePos.NO_QUOTING

    return LinePos.OUT_OF_ARG


def command_quoting(cmd: str, registry: "Registry") -> tuple[str, bool]:
    """Pick the separator and regex quoting mode for the command cmd starts with."""
    info = registry.get_cmd_info(cmd)
    match info.id:
        case CmdId.FILTER:
            return WHITESPACE_SEP, True
        case CmdId.SUBSTITUTE | CmdId.TR:
            return info.sep, True
        case _:
            return WHITESPACE_SEP, False


def get_cmdline_location(cmd: str, pos: int, registry: "Registry") -> CmdLineLocation:
    sep, regex_quoting = command_quoting(cmd, registry)
    return _LOCATIONS[line_pos(cmd, pos, sep, regex_quoting)]


def shell_like_escape(text: str) -> str:
    return "".join("\\" + ch if ch in _SHELL_SPECIAL else ch for ch in text)


def escape_for_squotes(text: str) -> str:
    return text.replace("'", "''")


def escape_for_dquotes(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def escape_for_insertion(cmd_line: str, pos: int, text: str, registry: "Registry") -> str:
    """Escape text so that inserting it at pos keeps it a single argument."""
    match get_cmdline_location(cmd_line, pos, registry):
        case CmdLineLocation.S_QUOTING:
            return escape_for_squotes(text)
        case CmdLineLocation.D_QUOTING:
            return escape_for_dquotes(text)
        case _:
            # TODO: regex quoting gets filename escaping; a regex-aware escape belongs here.
            return shell_like_escape(text)

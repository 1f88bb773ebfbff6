"""Command table: ids, argument categories, command-line parsing and dispatch."""

import re
import shlex
import string
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, TypeAlias

from loguru import logger

from exshell.errors import CmdError, CommandError
from exshell.history import CmdInputType

if TYPE_CHECKING:
    from exshell.shell import Shell
    from exshell.view import FileView

CommandHandler: TypeAlias = Callable[["CommandInfo", "Shell"], int]

_NAME_RE = re.compile(r"[A-Za-z]+")
_USER_NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9]*\Z")
_NUMBER_RE = re.compile(r"\d+")
_OFFSET_RE = re.compile(r"([+-])(\d*)")
_CMD_PREFIX = string.whitespace + ":"


class CmdId(Enum):
    """Closed set of command kinds the interpreter knows about."""

    NONE = auto()  # empty or unknown name
    USER = auto()  # user-defined command
    GOTO = auto()  # bare range, moves the cursor
    SHELL = auto()
    CD = auto()
    COMMAND = auto()
    DELCOMMAND = auto()
    ECHO = auto()
    ELSE = auto()
    ELSEIF = auto()
    ENDIF = auto()
    EXE = auto()
    FILTER = auto()
    FIND = auto()
    GREP = auto()
    HISTORY = auto()
    IF = auto()
    LET = auto()
    MAP = auto()
    NMAP = auto()
    VMAP = auto()
    NOREMAP = auto()
    NNOREMAP = auto()
    VNOREMAP = auto()
    PWD = auto()
    QUIT = auto()
    SOURCE = auto()
    SUBSTITUTE = auto()
    TR = auto()
    UNLET = auto()
    WINDO = auto()
    WINRUN = auto()
    YANK = auto()


class ArgsCategory(Enum):
    REGULAR = auto()  # ends at an unescaped |
    EXPR = auto()  # accepts || inside expressions, ends at a lone |
    UNTIL_THE_END = auto()  # takes the rest of the line, | included


UNTIL_THE_END_COMMANDS = frozenset(
    {
        CmdId.COMMAND,
        CmdId.EXE,
        CmdId.SHELL,
        CmdId.MAP,
        CmdId.NMAP,
        CmdId.VMAP,
        CmdId.NOREMAP,
        CmdId.NNOREMAP,
        CmdId.VNOREMAP,
        CmdId.WINDO,
        CmdId.WINRUN,
    }
)

EXPR_COMMANDS = frozenset({CmdId.ECHO, CmdId.EXE, CmdId.IF, CmdId.ELSEIF, CmdId.LET})


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    id: CmdId
    handler: CommandHandler
    abbr: str | None = None  # shortest accepted prefix, defaults to the full name
    range: bool = False
    bang: bool = False
    qmark: bool = False
    select: bool = False  # resolve the range into a selection before running
    regexp: bool = False  # s/pat/sub/ style arguments, no bang or ? parsing
    raw_args: bool = False  # do not split arguments into argv
    min_args: int = 0
    max_args: int | None = None

    def matches(self, name: str) -> bool:
        if not self.name or not self.name.startswith(name):
            return False
        return len(name) >= len(self.abbr or self.name)


@dataclass
class CommandInfo:
    """A parsed command-line: range, name, modifiers and arguments."""

    raw: str
    id: CmdId = CmdId.NONE
    name: str = ""
    begin: int = -1
    end: int = -1
    bang: bool = False
    qmark: bool = False
    args: str = ""
    argv: list[str] = field(default_factory=list)
    sep: str = " "


def skip_to_cmd_name(cmd: str) -> str:
    """Drop leading whitespace and colons."""
    return cmd.lstrip(_CMD_PREFIX)


def command_accepts_expr(cmd_id: CmdId) -> bool:
    return cmd_id in EXPR_COMMANDS


class Registry:
    """Builtin and user-defined commands, resolved by (abbreviated) name."""

    def __init__(self, commands: Iterable[CommandDescriptor]) -> None:
        self._builtins: list[CommandDescriptor] = list(commands)
        self._by_id = {d.id: d for d in self._builtins}
        self._user_commands: dict[str, str] = {}
        self._expanding: set[str] = set()
        self.swap_backwards_range = True
        self._user_descriptor = CommandDescriptor(
            name="",
            id=CmdId.USER,
            handler=self._run_user_command,
            range=True,
            select=True,
            raw_args=True,
        )

    # -- lookups ---------------------------------------------------------

    def builtin_names(self) -> list[str]:
        return sorted(d.name for d in self._builtins if d.name and d.name[0].isalpha())

    def user_names(self) -> list[str]:
        return sorted(self._user_commands)

    @property
    def user_commands(self) -> dict[str, str]:
        return dict(self._user_commands)

    def find_builtin(self, name: str) -> CommandDescriptor | None:
        for descriptor in self._builtins:
            if descriptor.matches(name):
                return descriptor
        return None

    def get_cmd_info(self, cmd: str) -> CommandInfo:
        """Parse cmd leniently; never raises and never validates ranges."""
        try:
            return self._parse(cmd, view=None, strict=False)
        except CommandError:
            return CommandInfo(raw=skip_to_cmd_name(cmd))

    def get_cmd_id(self, cmd: str) -> CmdId:
        return self.get_cmd_info(cmd).id

    def get_cmd_args_type(self, cmd: str) -> ArgsCategory:
        cmd_id = self.get_cmd_id(cmd)
        if cmd_id in UNTIL_THE_END_COMMANDS:
            return ArgsCategory.UNTIL_THE_END
        if command_accepts_expr(cmd_id):
            return ArgsCategory.EXPR
        return ArgsCategory.REGULAR

    # -- user commands -----------------------------------------------------

    def add_user_command(self, name: str, action: str, force: bool = False) -> None:
        if not _USER_NAME_RE.match(name):
            raise CommandError(CmdError.INCORRECT_NAME)
        if self.find_builtin(name) is not None:
            raise CommandError(CmdError.NO_BUILTIN_REDEFINE)
        if name in self._user_commands and not force:
            raise CommandError(CmdError.NEED_BANG)
        self._user_commands[name] = action

    def del_user_command(self, name: str) -> None:
        if name not in self._user_commands:
            raise CommandError(CmdError.NO_SUCH_UDF)
        del self._user_commands[name]

    def clear_user_commands(self) -> None:
        self._user_commands.clear()

    # -- dispatch ----------------------------------------------------------

    def execute(self, cmd: str, shell: "Shell") -> int:
        """Parse and run one command against shell.curr_view.

        Returns 0 on silent success, a positive value when a message should
        stay visible and a CmdError value on failure.
        """
        try:
            info = self._parse(cmd, view=shell.curr_view, strict=True)
            descriptor = self._descriptor_for(info.id)
            if descriptor is None:
                return 0
            if descriptor.select:
                shell.select_range(info.id, info)
            return descriptor.handler(info, shell)
        except CommandError as exc:
            if exc.code in (CmdError.INVALID_RANGE, CmdError.CUSTOM) and exc.message:
                shell.statusbar.error(exc.message)
            return exc.code

    def _descriptor_for(self, cmd_id: CmdId) -> CommandDescriptor | None:
        if cmd_id is CmdId.USER:
            return self._user_descriptor
        return self._by_id.get(cmd_id)

    def _run_user_command(self, info: CommandInfo, shell: "Shell") -> int:
        if info.name in self._expanding:
            raise CommandError(CmdError.LOOP)

        action = self._user_commands[info.name].replace("%a", info.args)
        if action.startswith(":"):
            action = action[1:]
        else:
            action = "!" + action

        self._expanding.add(info.name)
        try:
            result = shell.exec_commands(action, shell.curr_view, CmdInputType.COMMAND)
        finally:
            self._expanding.discard(info.name)
        # Failures inside the action were already reported.
        return CmdError.CUSTOM if result < 0 else result

    # -- parsing -----------------------------------------------------------

    def _parse(self, cmd: str, view: "FileView | None", strict: bool) -> CommandInfo:
        text = skip_to_cmd_name(cmd)
        info = CommandInfo(raw=text)

        if view is None:
            current, last = 0, sys.maxsize
        else:
            current, last = view.list_pos, view.list_rows - 1

        info.begin, info.end, rest = self._parse_range(text, current, last, strict)
        ranged = len(rest) != len(text)
        if ranged:
            rest = rest.lstrip(" \t")

        if rest.startswith("!"):
            name = "!"
        else:
            match = _NAME_RE.match(rest)
            name = match.group() if match else ""
        rest = rest[len(name) :]

        descriptor: CommandDescriptor | None
        if not name:
            if rest.strip():
                if strict:
                    raise CommandError(CmdError.INVALID_CMD)
                return info
            if not ranged:
                return info
            descriptor = self._by_id[CmdId.GOTO]
        elif name == "!":
            descriptor = self._by_id[CmdId.SHELL]
        else:
            descriptor = self.find_builtin(name)
            if descriptor is None:
                name = self._resolve_user_name(name, strict)
                if not name:
                    return info
                descriptor = self._user_descriptor

        info.id = descriptor.id
        info.name = name

        if not descriptor.regexp:
            if rest.startswith("!"):
                info.bang = True
                rest = rest[1:]
            if rest.startswith("?"):
                info.qmark = True
                rest = rest[1:]

        info.args = rest.lstrip()
        if descriptor.id in (CmdId.SUBSTITUTE, CmdId.TR):
            first = info.args[:1]
            info.sep = first if first and not first.isalnum() else "/"

        if strict:
            self._validate(descriptor, info, ranged)
        return info

    def _resolve_user_name(self, name: str, strict: bool) -> str:
        if name in self._user_commands:
            return name
        candidates = [user for user in self._user_commands if user.startswith(name)]
        if len(candidates) == 1:
            return candidates[0]
        if not strict:
            return ""
        if candidates:
            raise CommandError(CmdError.UDF_IS_AMBIGUOUS)
        raise CommandError(CmdError.INVALID_CMD)

    @staticmethod
    def _validate(descriptor: CommandDescriptor, info: CommandInfo, ranged: bool) -> None:
        if ranged and not descriptor.range:
            raise CommandError(CmdError.NO_RANGE_ALLOWED)
        if info.bang and not descriptor.bang:
            raise CommandError(CmdError.NO_BANG_ALLOWED)
        if info.qmark and not descriptor.qmark:
            raise CommandError(CmdError.NO_QMARK_ALLOWED)

        splits = not (
            descriptor.raw_args
            or descriptor.regexp
            or descriptor.id in UNTIL_THE_END_COMMANDS
            or command_accepts_expr(descriptor.id)
        )
        if not splits:
            if descriptor.min_args > 0 and not info.args:
                raise CommandError(CmdError.TOO_FEW_ARGS)
            return

        try:
            info.argv = shlex.split(info.args)
        except ValueError as exc:
            raise CommandError(CmdError.INVALID_ARG) from exc
        if len(info.argv) < descriptor.min_args:
            raise CommandError(CmdError.TOO_FEW_ARGS)
        if descriptor.max_args is not None and len(info.argv) > descriptor.max_args:
            raise CommandError(CmdError.TRAILING_CHARS)

    def _parse_range(self, text: str, current: int, last: int, strict: bool) -> tuple[int, int, str]:
        """Parse an optional leading range; rows are returned 0-based.

        A single address only sets the end of the range; the begin is then
        reported as -1.
        """
        begin: int | None
        if text.startswith("%"):
            begin, end, rest = 0, last, text[1:]
        else:
            first, rest = _parse_address(text, current, last)
            if rest.startswith(","):
                second, rest = _parse_address(rest[1:], current, last)
                begin = current if first is None else first
                end = current if second is None else second
            elif first is not None:
                begin, end = None, first
            else:
                return -1, -1, text

        if strict:
            if begin is not None and begin > end:
                if not self.swap_backwards_range:
                    raise CommandError(CmdError.INVALID_RANGE, "Backwards range given")
                logger.debug("swapping backwards range {},{}", begin + 1, end + 1)
                begin, end = end, begin
            for row in (begin, end):
                if row is not None and not 0 <= row <= last:
                    raise CommandError(CmdError.INVALID_RANGE, "Invalid range")
        return (-1 if begin is None else begin), end, rest


def _parse_address(text: str, current: int, last: int) -> tuple[int | None, str]:
    if text.startswith("."):
        row, text = current, text[1:]
    elif text.startswith("$"):
        row, text = last, text[1:]
    elif number := _NUMBER_RE.match(text):
        row, text = max(int(number.group()) - 1, 0), text[number.end() :]
    elif text.startswith(("+", "-")):
        row = current
    else:
        return None, text

    while offset := _OFFSET_RE.match(text):
        amount = int(offset.group(2) or 1)
        row += amount if offset.group(1) == "+" else -amount
        text = text[offset.end() :]
    return row, text

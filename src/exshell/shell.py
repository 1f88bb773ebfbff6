"""Interpreter session and main loop: read, split, gate, dispatch, repeat."""

import contextlib
import re
import readline

from loguru import logger

from exshell.builtins import BUILTIN_COMMANDS
from exshell.completion import setup_completion
from exshell.conditionals import IfStack
from exshell.config import Settings, get_settings
from exshell.errors import error_message
from exshell.expansion import replace_home_part
from exshell.expression import Value
from exshell.history import SEARCH_TYPES, CmdInputType, HistoryStore
from exshell.logging_utils import configure_logging
from exshell.registry import CmdId, CommandInfo, Registry, skip_to_cmd_name
from exshell.splitter import break_cmdline
from exshell.statusbar import StatusBar
from exshell.undo import UndoLog
from exshell.view import FileView

# Prompt prefixes that turn a line into a search or filter pattern.
_INPUT_PREFIXES = {
    "/": CmdInputType.FSEARCH_PATTERN,
    "?": CmdInputType.BSEARCH_PATTERN,
    "=": CmdInputType.FILTER_PATTERN,
}

_NO_DEFAULT_RANGE = (CmdId.FIND, CmdId.GREP)


class Shell:
    """One interpreter session.

    Owns everything commands read or change: both panes, the if-stack, the
    selection preservation flag, histories, registers, the status bar and
    the undo log.  Sessions never share state.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        lwin: FileView | None = None,
        rwin: FileView | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = Registry(BUILTIN_COMMANDS)
        self.registry.swap_backwards_range = self.settings.swap_backwards_range
        self.if_levels = IfStack()
        # Set by conditionals so that evaluating them keeps the selection.
        self.keep_selection = False

        self.lwin = lwin or FileView()
        self.rwin = rwin or FileView(self.lwin.cwd)
        self.curr_view = self.lwin
        self.other_view = self.rwin

        self.history = HistoryStore(self.settings.history_len)
        self.statusbar = StatusBar()
        self.undo = UndoLog()
        self.variables: dict[str, Value] = {}
        self.mappings: dict[str, dict[str, tuple[str, bool]]] = {"normal": {}, "visual": {}}
        self.registers: dict[str, list[str]] = {}
        self.menu: list[str] = []
        self.last_shell_command = ""
        self._sourcing: set[str] = set()

    # -- entry points -------------------------------------------------------

    def exec_commands(self, cmdline: str, view: FileView, input_type: CmdInputType) -> int:
        """Run every sub-command of cmdline, never stopping at an error.

        Returns -1 if any sub-command failed, 1 if one left a message to
        show and 0 otherwise.
        """
        result = 0
        for cmd in break_cmdline(cmdline, self.registry):
            ret = self.exec_command(cmd, view, input_type)
            if ret < 0:
                result = -1
            elif ret > 0 and result == 0:
                result = 1
        return result

    def exec_command(self, cmd: str | None, view: FileView, input_type: CmdInputType) -> int:
        """Run a single command or pattern; None repeats the last one of its kind."""
        if cmd is None:
            return self._repeat_command(view, input_type)

        match input_type:
            case CmdInputType.COMMAND | CmdInputType.MENU_COMMAND:
                return self._execute_command(view, cmd, menu=input_type is CmdInputType.MENU_COMMAND)
            case CmdInputType.FSEARCH_PATTERN | CmdInputType.BSEARCH_PATTERN:
                return self._find_pattern(view, cmd, backward=input_type is CmdInputType.BSEARCH_PATTERN)
            case CmdInputType.VFSEARCH_PATTERN | CmdInputType.VBSEARCH_PATTERN:
                return self._find_pattern(
                    view, cmd, backward=input_type is CmdInputType.VBSEARCH_PATTERN, visual=True
                )
            case CmdInputType.FILTER_PATTERN:
                return self._apply_filter(view, cmd)
            case _:
                raise ValueError(f"cannot execute input of type {input_type.name}")

    def _repeat_command(self, view: FileView, input_type: CmdInputType) -> int:
        match input_type:
            case CmdInputType.COMMAND:
                return self._execute_command(view, None, menu=False)
            case CmdInputType.FILTER_PATTERN:
                return self._apply_filter(view, "")
            case _ if input_type in SEARCH_TYPES:
                return self.exec_command(self.history.search.last, view, input_type)
            case _:
                raise ValueError(f"cannot repeat input of type {input_type.name}")

    def _execute_command(self, view: FileView, command: str | None, menu: bool) -> int:
        if command is None:
            self.remove_selection(view)
            return 0

        command = skip_to_cmd_name(command)
        if command.startswith('"'):
            return 0
        if not command and not menu:
            self.remove_selection(view)
            return 0

        cmd_id = self.registry.get_cmd_id(command)
        if not self.if_levels.should_process(cmd_id):
            logger.debug("skipping {!r} inside a false branch", command)
            return 0

        if cmd_id is CmdId.USER:
            # Operations of the user command end up in a group of their own.
            self.undo.group_begin(f"in {replace_home_part(view.cwd)}: {command}")
            self.undo.group_end()

        with self._picked(view):
            self.keep_selection = False
            result = self.registry.execute(command, self)
            if result >= 0 and not menu:
                self._post(cmd_id)

        if result >= 0:
            return result

        message = error_message(result)
        if message is not None:
            self.statusbar.error(message)
        logger.warning("{!r} failed with {}", command, result)

        if not menu:
            self.remove_selection(view)
        return -1

    # -- panes and selection ---------------------------------------------------

    @contextlib.contextmanager
    def _picked(self, view: FileView):
        """Make view the current pane for the duration of one command."""
        saved = (self.curr_view, self.other_view)
        self.curr_view = view
        self.other_view = self.lwin if view is self.rwin else self.rwin
        try:
            yield view
        finally:
            if self.curr_view is view:
                self.curr_view, self.other_view = saved

    def select_range(self, cmd_id: CmdId, info: CommandInfo) -> None:
        """Turn the range of a command into the selection it operates on.

        An explicit range replaces the selection (".." is only included
        when it is the single row of the range).  Without a range an empty
        selection becomes the given row or the cursor row, except for
        commands that search the whole directory by default.
        """
        view = self.curr_view

        if info.begin > -1:
            view.clean_selected_files()
            for row in range(info.begin, info.end + 1):
                if view.is_parent_dir(row) and info.begin != info.end:
                    continue
                view.entries[row].selected = True
        elif view.selected_files == 0:
            if info.end > -1:
                row = info.end
            elif cmd_id not in _NO_DEFAULT_RANGE:
                row = view.list_pos
            else:
                return
            view.clean_selected_files()
            if row < view.list_rows:
                view.entries[row].selected = True
        else:
            return

        if view.selected_files > 0:
            view.user_selection = False

    def _post(self, cmd_id: CmdId) -> None:
        view = self.curr_view
        if cmd_id is not CmdId.GOTO and view.selected_files > 0 and not self.keep_selection:
            view.clean_selected_files()

    def remove_selection(self, view: FileView) -> None:
        if view.selected_files:
            view.clean_selected_files()

    def preserve_selection(self) -> None:
        self.keep_selection = True

    # -- conditionals and scopes ---------------------------------------------------

    def scope_start(self) -> None:
        self.if_levels.scope_start()

    def scope_finish(self) -> bool:
        if not self.if_levels.scope_finish():
            self.statusbar.error("Missing :endif")
            logger.warning("scope closed with an unterminated :if")
            return False
        return True

    def scoped_if(self, cond: bool) -> None:
        self.if_levels.scoped_if(cond)
        self.preserve_selection()

    def scoped_elseif(self, cond: bool) -> bool:
        if not self.if_levels.scoped_elseif(cond):
            return False
        self.preserve_selection()
        return True

    def scoped_else(self) -> bool:
        if not self.if_levels.scoped_else():
            return False
        self.preserve_selection()
        return True

    def scoped_endif(self) -> bool:
        return self.if_levels.scoped_endif()

    # -- patterns ------------------------------------------------------------------

    def _find_pattern(self, view: FileView, pattern: str, backward: bool, visual: bool = False) -> int:
        if not pattern:
            self.statusbar.error("No previous search pattern")
            return -1
        try:
            row = view.find_pattern(pattern, backward)
        except re.error as exc:
            self.statusbar.error(f"Invalid pattern: {exc}")
            return -1
        if row < 0:
            self.statusbar.error(f"No matching files for {pattern}")
            return -1

        if visual:
            view.entries[row].selected = True
            view.user_selection = False

        rows = view.matching_rows(pattern)
        self.statusbar.message(f"{rows.index(row) + 1} of {len(rows)} matching files")
        return 1

    def _apply_filter(self, view: FileView, pattern: str) -> int:
        try:
            view.apply_local_filter(pattern)
        except re.error as exc:
            self.statusbar.error(f"Invalid pattern: {exc}")
            return -1
        return 0

    # -- scripts -------------------------------------------------------------------

    def source_file(self, path: str) -> bool:
        """Run a script in a scope of its own; False if anything in it failed."""
        if path in self._sourcing:
            self.statusbar.error(f"Recursive :source of {path}")
            return False
        try:
            with open(path) as f:
                lines = f.read().splitlines()
        except OSError as exc:
            self.statusbar.error(f"Can't open {path}: {exc.strerror}")
            return False

        self._sourcing.add(path)
        self.scope_start()
        ok = True
        try:
            for line in _join_continuations(lines):
                if self.exec_commands(line, self.curr_view, CmdInputType.COMMAND) < 0:
                    ok = False
        finally:
            self._sourcing.discard(path)
            if not self.scope_finish():
                ok = False
        return ok

    # -- history -------------------------------------------------------------------

    def save_history_entry(self, text: str, input_type: CmdInputType) -> None:
        self.history.save(text, input_type)

    def load_history(self) -> None:
        with contextlib.suppress(FileNotFoundError, PermissionError, OSError):
            readline.read_history_file(self.settings.history_file)
        for i in range(1, readline.get_current_history_length() + 1):
            item = readline.get_history_item(i)
            if item:
                self.history.cmd.save(item)

    def save_history(self) -> None:
        with contextlib.suppress(PermissionError, OSError):
            readline.write_history_file(self.settings.history_file)

    # -- main loop -------------------------------------------------------------------

    def get_prompt(self) -> str:
        return f"{replace_home_part(self.curr_view.cwd)} {self.settings.prompt} "

    def run_line(self, line: str) -> int:
        """Remember line in its history and run it."""
        input_type = _INPUT_PREFIXES.get(line[:1], CmdInputType.COMMAND)
        if input_type is not CmdInputType.COMMAND:
            line = line[1:]
        self.save_history_entry(line, input_type)

        if input_type is CmdInputType.COMMAND:
            return self.exec_commands(line, self.curr_view, input_type)
        return self.exec_command(line or None, self.curr_view, input_type)

    def run(self) -> None:
        """Main loop."""
        self.load_history()
        readline.set_history_length(self.settings.history_len)
        setup_completion(self)

        if self.settings.rc_file.is_file():
            self.source_file(str(self.settings.rc_file))

        while True:
            try:
                line = input(self.get_prompt())
            except (EOFError, KeyboardInterrupt):
                print()
                break

            line = line.strip()
            if not line:
                continue
            self.run_line(line)

        self.save_history()


def _join_continuations(lines: list[str]) -> list[str]:
    """Glue lines starting with a backslash to the line before them."""
    joined: list[str] = []
    for line in lines:
        stripped = line.lstrip()
        if stripped.startswith("\\") and joined:
            joined[-1] += stripped[1:]
        elif stripped:
            joined.append(line)
    return joined


def main() -> None:
    """Entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)
    Shell(settings).run()

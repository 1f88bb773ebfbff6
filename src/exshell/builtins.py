"""Built-in commands."""

import fnmatch
import os
import re
import subprocess
import sys
from typing import TYPE_CHECKING

from loguru import logger

from exshell.conditionals import IfFrame
from exshell.errors import CmdError, CommandError
from exshell.expansion import expand_envvars, expand_tilde
from exshell.expression import ExpressionError, Value, eval_arglist, evaluate
from exshell.history import CmdInputType
from exshell.registry import CmdId, CommandDescriptor, CommandInfo
from exshell.view import PARENT_DIR, DirEntry

if TYPE_CHECKING:
    from exshell.shell import Shell
    from exshell.view import FileView

_LET_RE = re.compile(r"(\$[A-Za-z_]\w*|g:[A-Za-z_]\w*)\s*(\.?=)\s*(.*)\Z", re.DOTALL)

MAP_MODES: dict[CmdId, tuple[tuple[str, ...], bool]] = {
    CmdId.MAP: (("normal", "visual"), False),
    CmdId.NMAP: (("normal",), False),
    CmdId.VMAP: (("visual",), False),
    CmdId.NOREMAP: (("normal", "visual"), True),
    CmdId.NNOREMAP: (("normal",), True),
    CmdId.VNOREMAP: (("visual",), True),
}


def _custom_error(message: str) -> CommandError:
    return CommandError(CmdError.CUSTOM, message)


def _eval_args(info: CommandInfo, shell: "Shell") -> str:
    try:
        return eval_arglist(info.args, shell.variables)
    except ExpressionError as exc:
        raise _custom_error(f"Invalid expression: {info.args[exc.position:]}") from exc


def _eval_condition(info: CommandInfo, shell: "Shell") -> bool:
    try:
        return evaluate(info.args, shell.variables).to_bool()
    except ExpressionError as exc:
        raise _custom_error(f"Invalid expression: {info.args[exc.position:]}") from exc


def _nested_status(result: int) -> int:
    # Errors of nested commands were reported where they happened.
    return CmdError.CUSTOM if result < 0 else result


def _resolve_path(view: "FileView", arg: str) -> str:
    return os.path.normpath(os.path.join(view.cwd, expand_tilde(expand_envvars(arg))))


def _target_entries(view: "FileView") -> list[DirEntry]:
    return [entry for entry in view.selected_entries() if entry.name != PARENT_DIR]


# -- navigation and expressions ------------------------------------------------


def builtin_goto(info: CommandInfo, shell: "Shell") -> int:
    shell.curr_view.list_pos = info.end
    return 0


def builtin_echo(info: CommandInfo, shell: "Shell") -> int:
    text = _eval_args(info, shell) if info.args else ""
    shell.statusbar.message(text)
    return 1


def builtin_execute(info: CommandInfo, shell: "Shell") -> int:
    line = _eval_args(info, shell)
    return _nested_status(shell.exec_commands(line, shell.curr_view, CmdInputType.COMMAND))


def builtin_if(info: CommandInfo, shell: "Shell") -> int:
    shell.scoped_if(_eval_condition(info, shell))
    return 0


def builtin_elseif(info: CommandInfo, shell: "Shell") -> int:
    stack = shell.if_levels
    if stack.is_at_scope_bottom():
        raise _custom_error(":elseif without :if")
    if stack.top in (IfFrame.ELSE, IfFrame.FINISH):
        raise _custom_error(":elseif after :else")

    # Conditions after the matched branch are never evaluated.
    cond = _eval_condition(info, shell) if stack.top is IfFrame.BEFORE_MATCH else False
    shell.scoped_elseif(cond)
    return 0


def builtin_else(info: CommandInfo, shell: "Shell") -> int:
    stack = shell.if_levels
    if stack.is_at_scope_bottom():
        raise _custom_error(":else without :if")
    if not shell.scoped_else():
        raise _custom_error(":else after :else")
    return 0


def builtin_endif(info: CommandInfo, shell: "Shell") -> int:
    if not shell.scoped_endif():
        raise _custom_error(":endif without :if")
    return 0


def builtin_let(info: CommandInfo, shell: "Shell") -> int:
    match = _LET_RE.match(info.args)
    if match is None or not match.group(3).strip():
        raise _custom_error("Incorrect :let statement")

    name, op, expr = match.groups()
    try:
        value = eval_arglist(expr.strip(), shell.variables)
    except ExpressionError as exc:
        raise _custom_error(f"Invalid expression: {expr.strip()[exc.position:]}") from exc

    if name.startswith("$"):
        env_name = name[1:]
        if op == ".=":
            value = os.environ.get(env_name, "") + value
        os.environ[env_name] = value
    else:
        if op == ".=":
            if name not in shell.variables:
                raise _custom_error(f"Undefined variable: {name}")
            value = shell.variables[name].to_string() + value
        shell.variables[name] = Value(value)
    return 0


def builtin_unlet(info: CommandInfo, shell: "Shell") -> int:
    for name in info.argv:
        if name.startswith("$"):
            found = os.environ.pop(name[1:], None) is not None
        else:
            found = shell.variables.pop(name, None) is not None
        if not found and not info.bang:
            raise _custom_error(f"No such variable: {name}")
    return 0


# -- user commands and mappings ------------------------------------------------


def builtin_command(info: CommandInfo, shell: "Shell") -> int:
    name, _, action = info.args.partition(" ")
    action = action.strip()

    if action:
        shell.registry.add_user_command(name, action, force=info.bang)
        return 0

    commands = shell.registry.user_commands
    listing = [f"{cmd:<10} {commands[cmd]}" for cmd in sorted(commands) if cmd.startswith(name)]
    if not listing:
        shell.statusbar.message("No user-defined commands found")
    else:
        shell.statusbar.message("\n".join(listing))
    return 1


def builtin_delcommand(info: CommandInfo, shell: "Shell") -> int:
    if info.bang:
        if info.argv:
            raise CommandError(CmdError.TRAILING_CHARS)
        shell.registry.clear_user_commands()
        return 0
    if not info.argv:
        raise CommandError(CmdError.TOO_FEW_ARGS)
    shell.registry.del_user_command(info.argv[0])
    return 0


def builtin_map(info: CommandInfo, shell: "Shell") -> int:
    modes, noremap = MAP_MODES[info.id]
    lhs, _, rhs = info.args.partition(" ")
    rhs = rhs.lstrip()

    if lhs and rhs:
        for mode in modes:
            shell.mappings[mode][lhs] = (rhs, noremap)
        return 0

    listing = [
        f"{mode[0]}  {key:<10} {value}"
        for mode in modes
        for key, (value, _) in sorted(shell.mappings[mode].items())
        if key.startswith(lhs)
    ]
    shell.statusbar.message("\n".join(listing) if listing else "No mappings found")
    return 1


# -- panes -----------------------------------------------------------------------


def _run_in_views(shell: "Shell", command: str, views: list["FileView"]) -> int:
    result = 0
    for view in views:
        status = shell.exec_commands(command, view, CmdInputType.COMMAND)
        if status < 0 or result < 0:
            result = min(result, status)
        else:
            result = max(result, status)
    return _nested_status(result)


def builtin_windo(info: CommandInfo, shell: "Shell") -> int:
    if not info.args:
        return 0
    return _run_in_views(shell, info.args, [shell.lwin, shell.rwin])


def builtin_winrun(info: CommandInfo, shell: "Shell") -> int:
    which, command = info.args[:1], info.args[1:].lstrip()
    match which:
        case "^":
            views = [shell.lwin]
        case "$":
            views = [shell.rwin]
        case "%":
            views = [shell.lwin, shell.rwin]
        case ".":
            views = [shell.curr_view]
        case ",":
            views = [shell.other_view]
        case _:
            raise CommandError(CmdError.INVALID_ARG)

    if not command:
        return 0
    return _run_in_views(shell, command, views)


# -- external commands -------------------------------------------------------------


def builtin_shell(info: CommandInfo, shell: "Shell") -> int:
    command = info.args
    if not command:
        if not (info.bang and shell.last_shell_command):
            raise CommandError(CmdError.TOO_FEW_ARGS)
        command = shell.last_shell_command
    shell.last_shell_command = command

    logger.debug("running {!r} in {}", command, shell.curr_view.cwd)
    try:
        completed = subprocess.run(command, shell=True, cwd=shell.curr_view.cwd)
    except OSError as exc:
        raise _custom_error(f"Cannot run {command}: {exc.strerror}") from exc
    if completed.returncode != 0:
        raise _custom_error(f"Command exited with status {completed.returncode}")
    return 0


# -- filtering and renaming ------------------------------------------------------


def builtin_filter(info: CommandInfo, shell: "Shell") -> int:
    view = shell.curr_view
    if info.qmark:
        if info.args:
            raise CommandError(CmdError.TRAILING_CHARS)
        shell.statusbar.message(f"Filter is: {'!' if view.invert_filter else ''}{view.name_filter}")
        return 1

    pattern = info.args.strip()
    if len(pattern) > 1 and pattern.startswith("/") and pattern.endswith("/"):
        pattern = pattern[1:-1]
    try:
        view.set_name_filter(pattern, invert=info.bang)
    except re.error as exc:
        raise _custom_error(f"Invalid regular expression: {exc}") from exc
    return 0


def _split_pattern_args(args: str, sep: str) -> list[str]:
    """Split "/pat/sub/flags" on unescaped separators; "\\/" gives "/"."""
    parts: list[str] = []
    current: list[str] = []
    i = 1 if args.startswith(sep) else 0
    while i < len(args):
        ch = args[i]
        if ch == "\\" and args[i + 1 : i + 2] == sep:
            current.append(sep)
            i += 2
            continue
        if ch == sep:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def _rename_all(shell: "Shell", renames: list[tuple[str, str]], label: str) -> int:
    view = shell.curr_view
    targets: set[str] = set()
    for old, new in renames:
        if not new or "/" in new:
            raise _custom_error(f"Invalid file name: {new!r}")
        if new in targets:
            raise _custom_error(f"Name conflict: {new}")
        targets.add(new)
        # Entries hidden by a filter are still on disk.
        if new != old and os.path.lexists(os.path.join(view.cwd, new)):
            raise _custom_error(f"File exists: {new}")

    try:
        with shell.undo.group(label):
            for old, new in renames:
                try:
                    os.rename(os.path.join(view.cwd, old), os.path.join(view.cwd, new))
                except OSError as exc:
                    raise _custom_error(f"Cannot rename {old}: {exc.strerror}") from exc
                shell.undo.record(f"rename {old} to {new}")
    finally:
        view.load()

    shell.statusbar.message(f"{len(renames)} file{'' if len(renames) == 1 else 's'} renamed")
    return 1


def builtin_substitute(info: CommandInfo, shell: "Shell") -> int:
    parts = _split_pattern_args(info.args, info.sep)
    pattern = parts[0]
    if not pattern:
        raise CommandError(CmdError.TOO_FEW_ARGS)
    replacement = parts[1] if len(parts) > 1 else ""
    flags = parts[2] if len(parts) > 2 else ""
    if len(parts) > 3 or set(flags) - set("gi"):
        raise CommandError(CmdError.TRAILING_CHARS)

    try:
        regex = re.compile(pattern, re.IGNORECASE if "i" in flags else 0)
    except re.error as exc:
        raise _custom_error(f"Invalid regular expression: {exc}") from exc

    renames = []
    for entry in _target_entries(shell.curr_view):
        new = regex.sub(replacement, entry.name, count=0 if "g" in flags else 1)
        if new != entry.name:
            renames.append((entry.name, new))
    return _rename_all(shell, renames, f"substitute in {shell.curr_view.cwd}")


def builtin_tr(info: CommandInfo, shell: "Shell") -> int:
    parts = _split_pattern_args(info.args, info.sep)
    if len(parts) < 2 or not parts[0]:
        raise CommandError(CmdError.TOO_FEW_ARGS)
    if len(parts) > 3 or (len(parts) == 3 and parts[2]):
        raise CommandError(CmdError.TRAILING_CHARS)
    source, dest = parts[0], parts[1]
    if len(source) != len(dest):
        raise _custom_error("from and to strings must have equal lengths")

    table = str.maketrans(source, dest)
    renames = []
    for entry in _target_entries(shell.curr_view):
        new = entry.name.translate(table)
        if new != entry.name:
            renames.append((entry.name, new))
    return _rename_all(shell, renames, f"tr in {shell.curr_view.cwd}")


# -- searching ---------------------------------------------------------------------


def _search_roots(view: "FileView") -> list[str]:
    selected = _target_entries(view)
    return [view.path_of(entry) for entry in selected] if selected else [view.cwd]


def _show_menu(shell: "Shell", items: list[str], empty: str) -> int:
    shell.menu = items
    if not items:
        raise _custom_error(empty)
    shell.statusbar.message("\n".join(items))
    return 1


def builtin_find(info: CommandInfo, shell: "Shell") -> int:
    view = shell.curr_view
    if len(info.argv) == 2:
        roots, pattern = [_resolve_path(view, info.argv[0])], info.argv[1]
    else:
        roots, pattern = _search_roots(view), info.argv[0]

    found: list[str] = []
    for root in roots:
        if os.path.isfile(root):
            if fnmatch.fnmatch(os.path.basename(root), pattern):
                found.append(os.path.relpath(root, view.cwd))
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for name in sorted(dirnames + filenames):
                if fnmatch.fnmatch(name, pattern):
                    found.append(os.path.relpath(os.path.join(dirpath, name), view.cwd))
    return _show_menu(shell, found, "No files found")


def _grep_file(path: str, regex: re.Pattern, invert: bool, cwd: str) -> list[str]:
    matches = []
    try:
        with open(path, errors="replace") as f:
            for lineno, line in enumerate(f, 1):
                if (regex.search(line) is None) == invert:
                    matches.append(f"{os.path.relpath(path, cwd)}:{lineno}:{line.rstrip()}")
    except OSError as exc:
        logger.debug("grep: skipping {}: {}", path, exc)
    return matches


def builtin_grep(info: CommandInfo, shell: "Shell") -> int:
    view = shell.curr_view
    try:
        regex = re.compile(info.args)
    except re.error as exc:
        raise _custom_error(f"Invalid regular expression: {exc}") from exc

    found: list[str] = []
    for root in _search_roots(view):
        if os.path.isfile(root):
            found.extend(_grep_file(root, regex, info.bang, view.cwd))
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for name in sorted(filenames):
                found.extend(_grep_file(os.path.join(dirpath, name), regex, info.bang, view.cwd))
    return _show_menu(shell, found, "No matches found")


# -- files, directories and session ----------------------------------------------


def builtin_yank(info: CommandInfo, shell: "Shell") -> int:
    register = info.argv[0] if info.argv else '"'
    if len(register) != 1:
        raise CommandError(CmdError.INVALID_ARG)

    view = shell.curr_view
    paths = [view.path_of(entry) for entry in _target_entries(view)]
    shell.registers[register] = paths
    shell.statusbar.message(f"{len(paths)} file{'' if len(paths) == 1 else 's'} yanked")
    return 1


def builtin_cd(info: CommandInfo, shell: "Shell") -> int:
    view = shell.curr_view
    target = _resolve_path(view, info.argv[0]) if info.argv else os.path.expanduser("~")
    if not os.path.isdir(target):
        raise _custom_error(f"cd: not a directory: {target}")
    try:
        view.load(target)
    except OSError as exc:
        raise _custom_error(f"cd: cannot enter {target}: {exc.strerror}") from exc
    view.list_pos = 0
    return 0


def builtin_pwd(info: CommandInfo, shell: "Shell") -> int:
    shell.statusbar.message(shell.curr_view.cwd)
    return 1


_HISTORY_KINDS = {
    "": CmdInputType.COMMAND,
    ":": CmdInputType.COMMAND,
    "cmd": CmdInputType.COMMAND,
    "/": CmdInputType.FSEARCH_PATTERN,
    "search": CmdInputType.FSEARCH_PATTERN,
    "?": CmdInputType.BSEARCH_PATTERN,
    "=": CmdInputType.FILTER_PATTERN,
    "filter": CmdInputType.FILTER_PATTERN,
    "@": CmdInputType.PROMPT_INPUT,
    "input": CmdInputType.PROMPT_INPUT,
}


def builtin_history(info: CommandInfo, shell: "Shell") -> int:
    kind = _HISTORY_KINDS.get(info.argv[0] if info.argv else "")
    if kind is None:
        raise CommandError(CmdError.INVALID_ARG)

    items = shell.history.by_type(kind).items
    if not items:
        shell.statusbar.message("History disabled or empty")
        return 1
    shell.statusbar.message("\n".join(f"{i:>4}  {item}" for i, item in enumerate(items)))
    return 1


def builtin_source(info: CommandInfo, shell: "Shell") -> int:
    path = _resolve_path(shell.curr_view, info.argv[0])
    if not shell.source_file(path):
        return CmdError.CUSTOM
    return 0


def builtin_quit(info: CommandInfo, shell: "Shell") -> int:
    shell.save_history()
    sys.exit(0)


BUILTIN_COMMANDS: tuple[CommandDescriptor, ...] = (
    CommandDescriptor("", CmdId.GOTO, builtin_goto, range=True),
    CommandDescriptor("!", CmdId.SHELL, builtin_shell, bang=True),
    CommandDescriptor("cd", CmdId.CD, builtin_cd, max_args=1),
    CommandDescriptor("command", CmdId.COMMAND, builtin_command, abbr="com", bang=True),
    CommandDescriptor("delcommand", CmdId.DELCOMMAND, builtin_delcommand, abbr="delc", bang=True, max_args=1),
    CommandDescriptor("echo", CmdId.ECHO, builtin_echo, abbr="ec"),
    CommandDescriptor("elseif", CmdId.ELSEIF, builtin_elseif, abbr="elsei", min_args=1),
    CommandDescriptor("else", CmdId.ELSE, builtin_else, abbr="el", max_args=0),
    CommandDescriptor("endif", CmdId.ENDIF, builtin_endif, abbr="en", max_args=0),
    CommandDescriptor("execute", CmdId.EXE, builtin_execute, abbr="exe", min_args=1),
    CommandDescriptor("filter", CmdId.FILTER, builtin_filter, abbr="fil", bang=True, qmark=True, raw_args=True),
    CommandDescriptor("find", CmdId.FIND, builtin_find, abbr="fin", range=True, select=True, min_args=1, max_args=2),
    CommandDescriptor("grep", CmdId.GREP, builtin_grep, abbr="gr", range=True, bang=True, select=True,
                      raw_args=True, min_args=1),
    CommandDescriptor("history", CmdId.HISTORY, builtin_history, abbr="his", max_args=1),
    CommandDescriptor("if", CmdId.IF, builtin_if, min_args=1),
    CommandDescriptor("let", CmdId.LET, builtin_let, min_args=1),
    CommandDescriptor("map", CmdId.MAP, builtin_map),
    CommandDescriptor("nmap", CmdId.NMAP, builtin_map, abbr="nm"),
    CommandDescriptor("vmap", CmdId.VMAP, builtin_map, abbr="vm"),
    CommandDescriptor("noremap", CmdId.NOREMAP, builtin_map, abbr="no"),
    CommandDescriptor("nnoremap", CmdId.NNOREMAP, builtin_map, abbr="nn"),
    CommandDescriptor("vnoremap", CmdId.VNOREMAP, builtin_map, abbr="vn"),
    CommandDescriptor("pwd", CmdId.PWD, builtin_pwd, abbr="pw", max_args=0),
    CommandDescriptor("quit", CmdId.QUIT, builtin_quit, abbr="q", bang=True, max_args=0),
    CommandDescriptor("substitute", CmdId.SUBSTITUTE, builtin_substitute, abbr="s", range=True, select=True,
                      regexp=True, min_args=1),
    CommandDescriptor("source", CmdId.SOURCE, builtin_source, abbr="so", min_args=1, max_args=1),
    CommandDescriptor("tr", CmdId.TR, builtin_tr, range=True, select=True, regexp=True, min_args=1),
    CommandDescriptor("unlet", CmdId.UNLET, builtin_unlet, abbr="unl", bang=True, min_args=1),
    CommandDescriptor("windo", CmdId.WINDO, builtin_windo),
    CommandDescriptor("winrun", CmdId.WINRUN, builtin_winrun, min_args=1),
    CommandDescriptor("yank", CmdId.YANK, builtin_yank, abbr="y", range=True, select=True, max_args=1),
)

"""Readline tab completion for command names and paths."""

import os
import readline
from collections.abc import Callable
from typing import TYPE_CHECKING

from exshell.quoting import escape_for_insertion
from exshell.registry import skip_to_cmd_name
from exshell.splitter import find_last_command

if TYPE_CHECKING:
    from exshell.shell import Shell


def setup_completion(shell: "Shell") -> None:
    """Configure readline for tab completion."""
    readline.set_completer(make_completer(shell))
    readline.set_completer_delims(" \t\n|")
    readline.parse_and_bind("tab: complete")


def make_completer(shell: "Shell") -> Callable[[str, int], str | None]:
    """Readline completer function bound to shell.

    On state 0, compute all matches. On subsequent states, return the next.
    """
    matches: list[str] = []

    def completer(text: str, state: int) -> str | None:
        nonlocal matches
        if state == 0:
            matches = complete(shell, readline.get_line_buffer(), readline.get_begidx(), text)
        if state < len(matches):
            return matches[state]
        return None

    return completer


def complete(shell: "Shell", line: str, begidx: int, text: str) -> list[str]:
    """Complete the word text that starts at begidx of line.

    Only the last sub-command of the line matters: its first word is a
    command name, everything after it is a path.
    """
    last = find_last_command(line[:begidx] + text)
    before = last[: len(last) - len(text)]
    if not skip_to_cmd_name(before):
        return _complete_command(shell, text)

    matches = _complete_path(shell.curr_view.cwd, text)
    return [escape_for_insertion(last, len(before), match, shell.registry) for match in matches]


def _complete_command(shell: "Shell", text: str) -> list[str]:
    """Complete a command name from builtins and user-defined commands."""
    names = shell.registry.builtin_names() + shell.registry.user_names()
    return sorted({name for name in names if name.startswith(text)})


def _complete_path(cwd: str, text: str) -> list[str]:
    """Complete a file or directory path relative to cwd."""
    dirname = os.path.dirname(text)
    basename = os.path.basename(text)
    search_dir = os.path.join(cwd, os.path.expanduser(dirname))

    matches: list[str] = []
    try:
        for entry in os.listdir(search_dir):
            if entry.startswith(basename):
                full = os.path.join(dirname, entry) if dirname else entry
                if os.path.isdir(os.path.join(search_dir, entry)):
                    full += "/"
                matches.append(full)
    except OSError:
        pass

    return sorted(matches)

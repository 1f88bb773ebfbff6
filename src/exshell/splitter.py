"""Split a command-line into the sub-commands it chains with bars."""

from typing import TYPE_CHECKING

from loguru import logger

from exshell.quoting import WHITESPACE_SEP, LinePos, command_quoting, line_pos
from exshell.registry import ArgsCategory, skip_to_cmd_name

if TYPE_CHECKING:
    from exshell.registry import Registry


def _splits_at(pos: LinePos, sep: str) -> bool:
    # For whitespace-separated commands a bar right after a word ends the
    # command too; the parts of s/pat/sub/ style commands never do.
    if pos is LinePos.OUT_OF_ARG:
        return True
    return pos is LinePos.NO_QUOTING and sep == WHITESPACE_SEP


def _is_split_point(cmd: str, end: int, registry: "Registry") -> bool:
    sep, regex_quoting = command_quoting(cmd, registry)
    return _splits_at(line_pos(cmd, end, sep, regex_quoting), sep)


def _skip(cmdline: str, i: int) -> int:
    return len(cmdline) - len(skip_to_cmd_name(cmdline[i:]))


def break_cmdline(cmdline: str, registry: "Registry") -> list[str]:
    """Break cmdline into sub-commands.

    The category of every sub-command is resolved from its own name:

    * regular commands end at a bar outside of quotes, "\\|" turns into a
      literal bar and every other escape is kept as is;
    * expression commands keep "||" (logical or) and "\\|" as part of the
      text;
    * commands that take the rest of the line swallow every following bar.

    An empty line gives a single empty command, a line of only colons and
    whitespace gives no commands at all.
    """
    if not cmdline:
        return [""]

    cmds: list[str] = []
    n = len(cmdline)
    start = _skip(cmdline, 0)
    while start < n:
        category = registry.get_cmd_args_type(cmdline[start:])
        if category is ArgsCategory.UNTIL_THE_END:
            cmds.append(cmdline[start:])
            break

        processed: list[str] = []
        i = start
        while i < n:
            ch = cmdline[i]
            if category is ArgsCategory.REGULAR and ch == "\\":
                pair = cmdline[i : i + 2]
                processed.append("|" if pair == "\\|" else pair)
                i += 2
                continue
            if category is ArgsCategory.EXPR and cmdline.startswith("\\|", i):
                processed.append("\\|")
                i += 2
                continue
            if ch == "|":
                if category is ArgsCategory.EXPR and cmdline.startswith("||", i) \
                        and cmdline[i + 2 : i + 3] != "|":
                    processed.append("||")
                    i += 2
                    continue
                cmd = "".join(processed)
                if _is_split_point(cmd + cmdline[i:], len(cmd), registry):
                    break
            processed.append(ch)
            i += 1

        cmds.append("".join(processed))
        start = _skip(cmdline, i + 1) if i < n else n

    logger.debug("split {!r} into {!r}", cmdline, cmds)
    return cmds


def find_last_command(cmds: str) -> str:
    """Return the part of cmds where its last sub-command begins.

    Shell commands and :command definitions take the rest of the line, so
    the search stops at the first of them.
    """
    n = len(cmds)
    start = 0
    pos = 0
    while start < n:
        if cmds[pos : pos + 1] == "\\":
            pos += 2
            continue

        if pos < n and cmds[pos] != "|":
            pos += 1
            continue

        if pos >= n:
            break

        current = cmds[start:]
        regex_quoting = skip_to_cmd_name(current).startswith("fil")
        if not _splits_at(line_pos(current, pos - start, WHITESPACE_SEP, regex_quoting), WHITESPACE_SEP):
            pos += 1
            continue

        pos += 1
        if skip_to_cmd_name(current).startswith(("!", "com")):
            break
        start = pos
    return cmds[start:]

"""Environment variable and home directory expansion for path arguments."""

import os
import re

_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


def expand_envvars(text: str) -> str:
    """Expand $VAR and ${VAR} in text.

    Variables in single quotes are NOT expanded and "\\$" gives a literal
    dollar sign.  Undefined variables are left as written.
    """
    result: list[str] = []
    i = 0
    in_squotes = False

    while i < len(text):
        ch = text[i]

        if ch == "\\" and text[i + 1 : i + 2] == "$" and not in_squotes:
            result.append("$")
            i += 2
            continue

        if ch == "'":
            in_squotes = not in_squotes
        elif ch == "$" and not in_squotes:
            expanded, consumed = _expand_one_var(text, i)
            result.append(expanded)
            i += consumed
            continue

        result.append(ch)
        i += 1

    return "".join(result)


def _expand_one_var(text: str, pos: int) -> tuple[str, int]:
    """Expand the variable at text[pos] == '$'; returns (value, consumed)."""
    if text[pos + 1 : pos + 2] == "{":
        end = text.find("}", pos + 2)
        if end == -1:
            return ("${", 2)
        name = text[pos + 2 : end]
        return (os.environ.get(name, text[pos : end + 1]), end - pos + 1)

    match = _NAME_RE.match(text, pos + 1)
    if not match:
        return ("$", 1)
    name = match.group(0)
    return (os.environ.get(name, "$" + name), 1 + len(name))


def expand_tilde(path: str) -> str:
    """Expand ~ at the start of path to the user's home directory."""
    return os.path.expanduser(path) if path.startswith("~") else path


def replace_home_part(path: str) -> str:
    """Abbreviate the home directory at the start of path as ~."""
    home = os.path.expanduser("~")
    if path == home:
        return "~"
    if path.startswith(home + "/"):
        return "~/" + path[len(home) + 1 :]
    return path

"""The file list a command operates on: rows, cursor, selection and filters."""

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass

PARENT_DIR = ".."


@dataclass
class DirEntry:
    name: str
    is_dir: bool = False
    selected: bool = False


class FileView:
    """One pane of the file manager.

    Rows are indexed from 0. The parent directory pseudo-entry ("..") is kept
    visible regardless of filters.
    """

    def __init__(self, path: str | None = None, names: Iterable[str] | None = None) -> None:
        self.cwd: str = os.path.abspath(path or os.getcwd())
        self.list_pos: int = 0
        # False once a command selected rows on the user's behalf.
        self.user_selection: bool = True
        self.name_filter: str = ""
        self.invert_filter: bool = False
        self.local_filter: str = ""
        self._all_entries: list[DirEntry] = []
        self.entries: list[DirEntry] = []

        if names is None:
            self.load()
        else:
            self._all_entries = [DirEntry(name, is_dir=name == PARENT_DIR) for name in names]
            self._refilter()

    @classmethod
    def from_names(cls, names: Iterable[str], cwd: str = "/") -> "FileView":
        """Build a view over a fixed list of names without touching the disk."""
        return cls(cwd, names=names)

    def load(self, path: str | None = None) -> None:
        """(Re)read the directory listing, directories first.

        The view is left as it was when path cannot be read.
        """
        cwd = self.cwd if path is None else os.path.abspath(path)

        entries: list[DirEntry] = []
        if cwd != os.path.sep:
            entries.append(DirEntry(PARENT_DIR, is_dir=True))
        with os.scandir(cwd) as it:
            found = [DirEntry(e.name, is_dir=e.is_dir()) for e in it]
        found.sort(key=lambda e: (not e.is_dir, e.name))
        entries.extend(found)

        self.cwd = cwd
        self._all_entries = entries
        self._refilter()

    @property
    def list_rows(self) -> int:
        return len(self.entries)

    @property
    def selected_files(self) -> int:
        return sum(1 for entry in self.entries if entry.selected)

    @property
    def current(self) -> DirEntry | None:
        if not self.entries:
            return None
        return self.entries[self.list_pos]

    def is_parent_dir(self, row: int) -> bool:
        return self.entries[row].name == PARENT_DIR

    def selected_entries(self) -> list[DirEntry]:
        return [entry for entry in self.entries if entry.selected]

    def clean_selected_files(self) -> None:
        for entry in self._all_entries:
            entry.selected = False

    def path_of(self, entry: DirEntry) -> str:
        return os.path.join(self.cwd, entry.name)

    def set_name_filter(self, pattern: str, invert: bool = False) -> None:
        """Hide names that (do not) match pattern; raises re.error on a bad regex."""
        if pattern:
            re.compile(pattern)
        self.name_filter = pattern
        self.invert_filter = invert
        self._refilter()

    def apply_local_filter(self, pattern: str) -> None:
        """Show only names matching pattern; an empty pattern shows everything."""
        if pattern:
            re.compile(pattern)
        self.local_filter = pattern
        self._refilter()

    def matching_rows(self, pattern: str) -> list[int]:
        regex = re.compile(pattern)
        return [
            row
            for row, entry in enumerate(self.entries)
            if entry.name != PARENT_DIR and regex.search(entry.name)
        ]

    def find_pattern(self, pattern: str, backward: bool = False) -> int:
        """Move the cursor to the next row matching pattern, wrapping around.

        Returns the new cursor row or -1 when nothing matches.
        """
        rows = self.matching_rows(pattern)
        if not rows:
            return -1
        if backward:
            before = [row for row in rows if row < self.list_pos]
            target = before[-1] if before else rows[-1]
        else:
            after = [row for row in rows if row > self.list_pos]
            target = after[0] if after else rows[0]
        self.list_pos = target
        return target

    def _visible(self, name: str) -> bool:
        if name == PARENT_DIR:
            return True
        if self.name_filter:
            matched = re.search(self.name_filter, name) is not None
            if matched != self.invert_filter:
                return False
        if self.local_filter and re.search(self.local_filter, name) is None:
            return False
        return True

    def _refilter(self) -> None:
        self.entries = [entry for entry in self._all_entries if self._visible(entry.name)]
        self.list_pos = max(0, min(self.list_pos, len(self.entries) - 1))

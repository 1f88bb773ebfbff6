"""Undo groups: a labelled record of the file operations one command made."""

import contextlib
from dataclasses import dataclass, field

from loguru import logger


@dataclass
class UndoGroup:
    description: str
    operations: list[str] = field(default_factory=list)


class UndoLog:
    def __init__(self) -> None:
        self.groups: list[UndoGroup] = []
        self._current: UndoGroup | None = None
        self._depth = 0

    @property
    def last(self) -> UndoGroup | None:
        return self.groups[-1] if self.groups else None

    def group_begin(self, description: str) -> None:
        """Open a group; nested begins join the outermost one."""
        if self._depth == 0:
            self._current = UndoGroup(description)
        self._depth += 1

    def group_end(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0 and self._current is not None:
            logger.debug("undo group {!r}: {} operation(s)", self._current.description,
                         len(self._current.operations))
            self.groups.append(self._current)
            self._current = None

    def record(self, operation: str) -> None:
        if self._current is None:
            self.groups.append(UndoGroup(operation, [operation]))
        else:
            self._current.operations.append(operation)

    @contextlib.contextmanager
    def group(self, description: str):
        self.group_begin(description)
        try:
            yield
        finally:
            self.group_end()

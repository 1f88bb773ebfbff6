"""Nested :if/:elseif/:else/:endif state of an interpreter session."""

from enum import Enum, auto

from loguru import logger

from exshell.registry import CmdId


class IfFrame(Enum):
    SCOPE_GUARD = auto()  # start of one sourced script, blocks cannot cross it
    BEFORE_MATCH = auto()  # no condition evaluated to true yet
    MATCH = auto()  # inside the branch whose condition is true
    AFTER_MATCH = auto()  # the true branch is over
    ELSE = auto()  # else branch that runs since nothing matched
    FINISH = auto()  # after a skipped else, only :endif may follow


_RUNNING_FRAMES = (IfFrame.MATCH, IfFrame.ELSE)


class IfStack:
    """Stack of conditional frames plus a count of skipped nested ifs.

    Exactly one branch of an if/elseif/else chain runs.  Conditionals
    nested inside a branch that does not run are only counted, never
    evaluated.
    """

    def __init__(self) -> None:
        self._frames: list[IfFrame] = []
        self._skipped_nested_ifs = 0

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> tuple[IfFrame, ...]:
        return tuple(self._frames)

    @property
    def top(self) -> IfFrame | None:
        return self._frames[-1] if self._frames else None

    def is_at_scope_bottom(self) -> bool:
        return self.top in (None, IfFrame.SCOPE_GUARD)

    def scope_start(self) -> None:
        self._frames.append(IfFrame.SCOPE_GUARD)

    def scope_finish(self) -> bool:
        """Close the innermost scope; False when an :if was left open."""
        if not self.is_at_scope_bottom():
            logger.debug("unwinding {} unterminated frame(s)", len(self._frames))
            while self._frames and self._frames.pop() is not IfFrame.SCOPE_GUARD:
                pass
            self._skipped_nested_ifs = 0
            return False

        if self._frames:
            self._frames.pop()
        return True

    def should_process(self, cmd_id: CmdId) -> bool:
        if self.is_at_scope_bottom() or self.top in _RUNNING_FRAMES:
            return True

        # Inside a branch that does not run.
        match cmd_id:
            case CmdId.IF:
                self._skipped_nested_ifs += 1
                return False
            case CmdId.ELSEIF:
                return self._skipped_nested_ifs == 0
            case CmdId.ELSE | CmdId.ENDIF:
                if self._skipped_nested_ifs > 0:
                    if cmd_id is CmdId.ENDIF:
                        self._skipped_nested_ifs -= 1
                    return False
                return True
            case _:
                return False

    def scoped_if(self, cond: bool) -> None:
        self._frames.append(IfFrame.MATCH if cond else IfFrame.BEFORE_MATCH)

    def scoped_elseif(self, cond: bool) -> bool:
        if self.is_at_scope_bottom() or self.top in (IfFrame.ELSE, IfFrame.FINISH):
            return False
        if self.top is IfFrame.BEFORE_MATCH:
            self._frames[-1] = IfFrame.MATCH if cond else IfFrame.BEFORE_MATCH
        else:
            self._frames[-1] = IfFrame.AFTER_MATCH
        return True

    def scoped_else(self) -> bool:
        if self.is_at_scope_bottom() or self.top in (IfFrame.ELSE, IfFrame.FINISH):
            return False
        self._frames[-1] = IfFrame.ELSE if self.top is IfFrame.BEFORE_MATCH else IfFrame.FINISH
        return True

    def scoped_endif(self) -> bool:
        if self.is_at_scope_bottom():
            return False
        self._frames.pop()
        return True

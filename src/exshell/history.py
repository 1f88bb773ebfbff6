"""Input categories and the per-category history lists."""

from enum import Enum, auto


class CmdInputType(Enum):
    """What kind of text a line of user input is."""

    COMMAND = auto()
    MENU_COMMAND = auto()
    FSEARCH_PATTERN = auto()
    BSEARCH_PATTERN = auto()
    VFSEARCH_PATTERN = auto()
    VBSEARCH_PATTERN = auto()
    FILTER_PATTERN = auto()
    PROMPT_INPUT = auto()


SEARCH_TYPES = frozenset(
    {
        CmdInputType.FSEARCH_PATTERN,
        CmdInputType.BSEARCH_PATTERN,
        CmdInputType.VFSEARCH_PATTERN,
        CmdInputType.VBSEARCH_PATTERN,
    }
)


def is_history_command(command: str) -> bool:
    """Bare shell repeats (:! and :!!) are not worth remembering."""
    return command not in ("!!", "!")


class History:
    """Most-recent-first list of unique entries with a size limit."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.items: list[str] = []

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def last(self) -> str:
        return self.items[0] if self.items else ""

    def save(self, item: str) -> None:
        if not item or self.size == 0:
            return
        if item in self.items:
            self.items.remove(item)
        self.items.insert(0, item)
        del self.items[self.size :]

    def resize(self, size: int) -> None:
        self.size = size
        del self.items[size:]


class HistoryStore:
    """Histories for commands, search patterns, filters and prompt answers."""

    def __init__(self, size: int) -> None:
        self.cmd = History(size)
        self.search = History(size)
        self.filter = History(size)
        self.prompt = History(size)

    def by_type(self, input_type: CmdInputType) -> History:
        match input_type:
            case CmdInputType.COMMAND | CmdInputType.MENU_COMMAND:
                return self.cmd
            case CmdInputType.FILTER_PATTERN:
                return self.filter
            case CmdInputType.PROMPT_INPUT:
                return self.prompt
            case _:
                return self.search

    def save(self, text: str, input_type: CmdInputType) -> None:
        """Append text to the history of its category, skipping trivial commands."""
        if input_type is CmdInputType.COMMAND and not is_history_command(text):
            return
        self.by_type(input_type).save(text)

"""The status bar: the one channel user-facing messages go through."""

import sys


class StatusBar:
    def __init__(self) -> None:
        self.last: str = ""
        self.is_error: bool = False

    def message(self, text: str) -> None:
        self.last = text
        self.is_error = False
        if text:
            print(text)

    def error(self, text: str) -> None:
        self.last = text
        self.is_error = True
        print(text, file=sys.stderr)

    def clear(self) -> None:
        self.last = ""
        self.is_error = False

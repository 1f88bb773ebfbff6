"""Tests for the completion module."""

import readline

import pytest

from exshell.builtins import BUILTIN_COMMANDS
from exshell.completion import (
    _complete_command,
    _complete_path,
    complete,
    make_completer,
    setup_completion,
)
from exshell.config import Settings
from exshell.shell import Shell
from exshell.view import FileView


@pytest.fixture
def shell(tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    (work / "my file.txt").touch()
    (work / "mydir").mkdir()
    (work / "other").touch()
    settings = Settings(history_file=tmp_path / "history", rc_file=tmp_path / "rc")
    return Shell(settings, FileView(str(work)))


class TestCompletePath:
    def test_complete_files(self, tmp_path):
        (tmp_path / "hello.txt").touch()
        (tmp_path / "help.py").touch()
        result = _complete_path(str(tmp_path), "hel")
        assert result == ["hello.txt", "help.py"]

    def test_complete_directories_get_slash(self, tmp_path):
        (tmp_path / "mydir").mkdir()
        assert _complete_path(str(tmp_path), "my") == ["mydir/"]

    def test_complete_subdirectory(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "file1.txt").touch()
        (sub / "file2.txt").touch()
        result = _complete_path(str(tmp_path), "sub/f")
        assert result == ["sub/file1.txt", "sub/file2.txt"]

    def test_complete_no_match(self, tmp_path):
        assert _complete_path(str(tmp_path), "zzz_nomatch") == []

    def test_nonexistent_dir(self, tmp_path):
        assert _complete_path(str(tmp_path), "/nonexistent_dir_xyz/foo") == []


class TestCompleteCommand:
    def test_abbreviation(self, shell):
        assert _complete_command(shell, "ec") == ["echo"]

    def test_all_builtins_completable(self, shell):
        for descriptor in BUILTIN_COMMANDS:
            if descriptor.name[:1].isalpha():
                assert descriptor.name in _complete_command(shell, descriptor.name)

    def test_user_commands(self, shell):
        shell.registry.add_user_command("Hello", ":echo 1")
        assert _complete_command(shell, "He") == ["Hello"]


class TestComplete:
    def test_command_name(self, shell):
        assert complete(shell, "ec", 0, "ec") == ["echo"]

    def test_command_after_bar(self, shell):
        assert complete(shell, "echo 1|ec", 7, "ec") == ["echo"]

    def test_paths_are_escaped(self, shell):
        assert complete(shell, "cd my", 3, "my") == ["my\\ file.txt", "mydir/"]

    def test_path_after_bar(self, shell):
        assert complete(shell, "pwd|cd ot", 7, "ot") == ["other"]


class TestReadlineHooks:
    def test_make_completer_iterates_matches(self, shell, monkeypatch):
        monkeypatch.setattr(readline, "get_line_buffer", lambda: "cd my")
        monkeypatch.setattr(readline, "get_begidx", lambda: 3)
        completer = make_completer(shell)
        assert completer("my", 0) == "my\\ file.txt"
        assert completer("my", 1) == "mydir/"
        assert completer("my", 2) is None

    def test_setup_completion(self, shell):
        try:
            setup_completion(shell)
            assert readline.get_completer() is not None
            assert readline.get_completer_delims() == " \t\n|"
        finally:
            readline.set_completer(None)

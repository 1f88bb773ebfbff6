"""Tests for the shell module."""

import os

import pytest

from exshell.config import Settings
from exshell.history import CmdInputType
from exshell.registry import CmdId, CommandInfo
from exshell.shell import Shell, _join_continuations
from exshell.view import FileView

COMMAND = CmdInputType.COMMAND


@pytest.fixture
def settings(tmp_path):
    return Settings(history_file=tmp_path / "history", rc_file=tmp_path / "rc")


@pytest.fixture
def shell(settings):
    return Shell(
        settings,
        FileView.from_names(["..", "a", "b", "c", "d"], cwd="/data"),
        FileView.from_names(["..", "x", "y"], cwd="/other"),
    )


def run(shell, line):
    return shell.exec_commands(line, shell.curr_view, COMMAND)


def selected_names(view):
    return [entry.name for entry in view.selected_entries()]


class TestExecCommands:
    def test_echo(self, shell, capsys):
        assert run(shell, "echo 'hi'") == 1
        assert capsys.readouterr().out == "hi\n"
        assert shell.statusbar.last == "hi"

    def test_bar_separated_commands(self, shell, capsys):
        run(shell, "echo 1 | echo 2")
        assert capsys.readouterr().out == "1\n2\n"

    def test_unknown_command(self, shell, capsys):
        assert run(shell, "nosuch") == -1
        assert "Invalid command name" in capsys.readouterr().err
        assert shell.statusbar.is_error

    def test_error_does_not_stop_the_line(self, shell, capsys):
        assert run(shell, "nosuch|echo 'after'") == -1
        assert capsys.readouterr().out == "after\n"

    def test_worst_status_wins(self, shell):
        assert run(shell, "echo 1|nosuch|pwd") == -1
        assert run(shell, "1|echo 1") == 1
        assert run(shell, "1") == 0

    def test_comment(self, shell, capsys):
        assert run(shell, '" just a comment | echo 1') == 0
        assert capsys.readouterr().out == ""

    def test_empty_command_clears_selection(self, shell):
        shell.lwin.entries[1].selected = True
        assert run(shell, "") == 0
        assert shell.lwin.selected_files == 0

    def test_error_clears_selection(self, shell):
        shell.lwin.entries[1].selected = True
        run(shell, "nosuch")
        assert shell.lwin.selected_files == 0

    def test_argument_errors(self, shell, capsys):
        run(shell, "pwd extra")
        run(shell, "echo! 1")
        run(shell, "2pwd")
        run(shell, "yank?")
        err = capsys.readouterr().err
        assert "Trailing characters" in err
        assert "No ! is allowed" in err
        assert "No range is allowed" in err
        assert "No ? is allowed" in err

    def test_prompt_input_cannot_be_executed(self, shell):
        with pytest.raises(ValueError):
            shell.exec_command("x", shell.lwin, CmdInputType.PROMPT_INPUT)


class TestRanges:
    def test_explicit_range(self, shell):
        run(shell, "2,4yank")
        assert shell.registers['"'] == ["/data/a", "/data/b", "/data/c"]
        # Selections made for a command do not outlive it.
        assert shell.lwin.selected_files == 0

    def test_default_is_cursor_row(self, shell):
        shell.lwin.list_pos = 2
        run(shell, "yank")
        assert shell.registers['"'] == ["/data/b"]

    def test_existing_selection_is_used(self, shell):
        shell.lwin.entries[3].selected = True
        shell.lwin.entries[4].selected = True
        run(shell, "yank a")
        assert shell.registers["a"] == ["/data/c", "/data/d"]

    def test_whole_list(self, shell):
        run(shell, "%yank")
        assert shell.registers['"'] == ["/data/a", "/data/b", "/data/c", "/data/d"]

    def test_out_of_bounds(self, shell, capsys):
        assert run(shell, "10yank") == -1
        assert "Invalid range" in capsys.readouterr().err
        assert shell.statusbar.last == "Invalid range"

    def test_begin_above_first_row(self, shell, capsys):
        # At the parent row ".-1" points one row above the list.
        assert run(shell, ".-1,3yank") == -1
        assert "Invalid range" in capsys.readouterr().err
        assert '"' not in shell.registers

    def test_backwards_range_is_swapped(self, shell):
        run(shell, "4,2yank")
        assert shell.registers['"'] == ["/data/a", "/data/b", "/data/c"]

    def test_backwards_range_rejected(self, tmp_path, capsys):
        settings = Settings(
            history_file=tmp_path / "history",
            rc_file=tmp_path / "rc",
            swap_backwards_range=False,
        )
        shell = Shell(
            settings,
            FileView.from_names(["..", "a", "b", "c"], cwd="/data"),
            FileView.from_names([".."], cwd="/other"),
        )
        assert run(shell, "3,2yank") == -1
        assert "Backwards range given" in capsys.readouterr().err

    @pytest.mark.parametrize("cmd,row", [("3", 2), ("$", 4), (".+1", 1), ("2,3", 2)])
    def test_goto(self, shell, cmd, row):
        assert run(shell, cmd) == 0
        assert shell.lwin.list_pos == row


class TestSelectRange:
    def test_parent_dir_only_as_single_row(self, shell):
        shell.select_range(CmdId.YANK, CommandInfo(raw="", begin=0, end=0))
        assert selected_names(shell.lwin) == [".."]
        assert not shell.lwin.user_selection

    def test_parent_dir_skipped_in_longer_range(self, shell):
        shell.select_range(CmdId.YANK, CommandInfo(raw="", begin=0, end=2))
        assert selected_names(shell.lwin) == ["a", "b"]

    def test_range_replaces_selection(self, shell):
        shell.lwin.entries[4].selected = True
        shell.select_range(CmdId.YANK, CommandInfo(raw="", begin=1, end=1))
        assert selected_names(shell.lwin) == ["a"]

    def test_single_address(self, shell):
        shell.select_range(CmdId.YANK, CommandInfo(raw="", end=3))
        assert selected_names(shell.lwin) == ["c"]

    def test_find_has_no_default_range(self, shell):
        shell.select_range(CmdId.FIND, CommandInfo(raw=""))
        assert shell.lwin.selected_files == 0
        assert shell.lwin.user_selection


class TestConditionals:
    def test_if_true(self, shell, capsys):
        run(shell, "if 1|echo 'yes'|else|echo 'no'|endif")
        assert capsys.readouterr().out == "yes\n"
        assert len(shell.if_levels) == 0

    def test_if_false(self, shell, capsys):
        run(shell, "if 0|echo 'yes'|else|echo 'no'|endif")
        assert capsys.readouterr().out == "no\n"

    def test_only_one_branch_runs(self, shell, capsys):
        run(shell, "if 0|echo 'a'|elseif 1|echo 'b'|elseif 1|echo 'c'|else|echo 'd'|endif")
        assert capsys.readouterr().out == "b\n"

    def test_nested_if_in_skipped_branch(self, shell, capsys):
        run(shell, "if 0|if 1|echo 'inner'|endif|echo 'x'|else|echo 'outer'|endif")
        assert capsys.readouterr().out == "outer\n"
        assert len(shell.if_levels) == 0

    def test_across_lines(self, shell, capsys):
        for line in ("if 'a' == 'b'", "echo 'skipped'", "else", "echo 'taken'", "endif"):
            run(shell, line)
        assert capsys.readouterr().out == "taken\n"

    def test_conditions_after_match_are_not_evaluated(self, shell, capsys):
        assert run(shell, "if 1|elseif g:undefined|endif") == 0
        assert capsys.readouterr().err == ""

    @pytest.mark.parametrize(
        "line,message",
        [
            ("else", ":else without :if"),
            ("elseif 1", ":elseif without :if"),
            ("endif", ":endif without :if"),
            ("if 1|else|else|endif", ":else after :else"),
            ("if 1|else|elseif 1|endif", ":elseif after :else"),
        ],
    )
    def test_misplaced_branches(self, shell, capsys, line, message):
        assert run(shell, line) == -1
        assert message in capsys.readouterr().err

    def test_invalid_condition(self, shell, capsys):
        assert run(shell, "if @") == -1
        assert "Invalid expression: @" in capsys.readouterr().err

    def test_if_keeps_selection(self, shell):
        shell.lwin.entries[2].selected = True
        run(shell, "if 1")
        assert shell.lwin.selected_files == 1

    def test_unterminated_scope(self, shell, capsys):
        shell.scope_start()
        run(shell, "if 1")
        assert not shell.scope_finish()
        assert "Missing :endif" in capsys.readouterr().err
        assert len(shell.if_levels) == 0


class TestUserCommands:
    def test_define_and_run(self, shell, capsys):
        run(shell, "command Hello :echo 'hi %a'")
        assert run(shell, "Hello world") == 1
        assert capsys.readouterr().out == "hi world\n"

    def test_undo_group_label(self, shell):
        run(shell, "command Hello :echo 1")
        run(shell, "Hello")
        assert shell.undo.last.description == "in /data: Hello"

    def test_several_commands_in_action(self, shell, capsys):
        run(shell, "command Two :echo 1|echo 2")
        run(shell, "Two")
        assert capsys.readouterr().out == "1\n2\n"

    def test_loop(self, shell, capsys):
        run(shell, "command Loop :Loop")
        assert run(shell, "Loop") == -1
        assert capsys.readouterr().err.count("Loop in commands") == 1

    def test_redefinition_needs_bang(self, shell, capsys):
        run(shell, "command Foo :echo 1")
        assert run(shell, "command Foo :echo 2") == -1
        assert "Add bang to force" in capsys.readouterr().err
        assert run(shell, "command! Foo :echo 2") == 0
        assert shell.registry.user_commands["Foo"] == ":echo 2"

    def test_ambiguous(self, shell, capsys):
        run(shell, "command Foo :echo 1")
        run(shell, "command Fob :echo 2")
        assert run(shell, "Fo") == -1
        assert "Ambiguous use of user-defined command" in capsys.readouterr().err

    def test_builtin_cannot_be_redefined(self, shell, capsys):
        run(shell, "command echo :pwd")
        assert "Can't redefine builtin command" in capsys.readouterr().err

    def test_delcommand(self, shell, capsys):
        run(shell, "command Foo :echo 1")
        assert run(shell, "delcommand Foo") == 0
        assert run(shell, "delcommand Foo") == -1
        assert "No such user defined command" in capsys.readouterr().err


class TestVariables:
    def test_let_and_echo(self, shell, capsys):
        run(shell, "let g:x = 'a'")
        run(shell, "let g:x .= 'b'")
        run(shell, "echo g:x")
        assert capsys.readouterr().out == "ab\n"

    def test_let_environment(self, shell, monkeypatch):
        monkeypatch.setenv("EXSHELL_TEST_VAR", "old")
        run(shell, "let $EXSHELL_TEST_VAR = 'new'")
        run(shell, "let $EXSHELL_TEST_VAR .= '!'")
        assert os.environ["EXSHELL_TEST_VAR"] == "new!"

    def test_append_to_undefined(self, shell, capsys):
        assert run(shell, "let g:y .= 'x'") == -1
        assert "Undefined variable: g:y" in capsys.readouterr().err

    def test_incorrect_let(self, shell, capsys):
        run(shell, "let x")
        assert "Incorrect :let statement" in capsys.readouterr().err

    def test_unlet(self, shell, capsys):
        run(shell, "let g:x = 1")
        assert run(shell, "unlet g:x") == 0
        assert "g:x" not in shell.variables
        assert run(shell, "unlet g:x") == -1
        assert "No such variable: g:x" in capsys.readouterr().err
        assert run(shell, "unlet! g:x") == 0

    def test_execute(self, shell, capsys):
        assert run(shell, "execute 'echo' 3") == 1
        assert capsys.readouterr().out == "3\n"

    def test_execute_keeps_bars(self, shell, capsys):
        run(shell, "execute 'echo 1|echo 2'")
        assert capsys.readouterr().out == "1\n2\n"

    def test_echo_invalid_expression(self, shell, capsys):
        assert run(shell, "echo 1 @") == -1
        assert "Invalid expression: @" in capsys.readouterr().err


class TestPanes:
    def test_windo(self, shell, capsys):
        assert run(shell, "windo pwd") == 1
        assert capsys.readouterr().out == "/data\n/other\n"
        assert shell.curr_view is shell.lwin

    @pytest.mark.parametrize("which,expected", [("^", "/data\n"), ("$", "/other\n"), (".", "/data\n"), (",", "/other\n")])
    def test_winrun(self, shell, capsys, which, expected):
        run(shell, f"winrun {which} pwd")
        assert capsys.readouterr().out == expected

    def test_winrun_invalid(self, shell, capsys):
        assert run(shell, "winrun x pwd") == -1
        assert "Invalid argument" in capsys.readouterr().err

    def test_commands_apply_to_given_view(self, shell, capsys):
        shell.exec_commands("pwd", shell.rwin, COMMAND)
        assert capsys.readouterr().out == "/other\n"
        assert shell.curr_view is shell.lwin


class TestPatterns:
    def test_forward_search(self, shell, capsys):
        assert shell.exec_command("c", shell.lwin, CmdInputType.FSEARCH_PATTERN) == 1
        assert shell.lwin.list_pos == 3
        assert "1 of 1 matching files" in capsys.readouterr().out

    def test_backward_search(self, shell):
        shell.exec_command("[ab]", shell.lwin, CmdInputType.BSEARCH_PATTERN)
        assert shell.lwin.list_pos == 2

    def test_repeat_uses_search_history(self, shell):
        shell.history.search.save("b")
        shell.exec_command(None, shell.lwin, CmdInputType.FSEARCH_PATTERN)
        assert shell.lwin.list_pos == 2

    def test_visual_search_selects(self, shell):
        shell.exec_command("d", shell.lwin, CmdInputType.VFSEARCH_PATTERN)
        assert selected_names(shell.lwin) == ["d"]

    @pytest.mark.parametrize(
        "pattern,message",
        [("", "No previous search pattern"), ("zzz", "No matching files for zzz"), ("(", "Invalid pattern")],
    )
    def test_search_failures(self, shell, capsys, pattern, message):
        assert shell.exec_command(pattern, shell.lwin, CmdInputType.FSEARCH_PATTERN) == -1
        assert message in capsys.readouterr().err

    def test_filter_and_reset(self, shell):
        shell.exec_command("^[ab]$", shell.lwin, CmdInputType.FILTER_PATTERN)
        assert [entry.name for entry in shell.lwin.entries] == ["..", "a", "b"]
        shell.exec_command(None, shell.lwin, CmdInputType.FILTER_PATTERN)
        assert shell.lwin.list_rows == 5

    def test_run_line_prefixes(self, shell):
        shell.run_line("/c")
        assert shell.lwin.list_pos == 3
        assert shell.history.search.last == "c"

        shell.run_line("=a")
        assert shell.history.filter.last == "a"

        shell.run_line("echo 1")
        assert shell.history.cmd.last == "echo 1"


class TestSourceFile:
    def test_script_with_continuation(self, shell, tmp_path, capsys):
        script = tmp_path / "script"
        script.write_text("let g:x = 'a'\necho g:x\n   \\ . 'b'\n\" comment\nif 1\necho 'in'\nendif\n")
        assert shell.source_file(str(script))
        assert capsys.readouterr().out == "ab\nin\n"

    def test_missing_endif(self, shell, tmp_path, capsys):
        script = tmp_path / "script"
        script.write_text("if 1\necho 'in'\n")
        assert not shell.source_file(str(script))
        assert "Missing :endif" in capsys.readouterr().err
        assert len(shell.if_levels) == 0

    def test_script_cannot_close_outer_if(self, shell, tmp_path, capsys):
        script = tmp_path / "script"
        script.write_text("endif\n")
        run(shell, "if 1")
        assert not shell.source_file(str(script))
        assert ":endif without :if" in capsys.readouterr().err
        assert len(shell.if_levels) == 1

    def test_missing_file(self, shell, tmp_path, capsys):
        assert not shell.source_file(str(tmp_path / "nope"))
        assert "Can't open" in capsys.readouterr().err

    def test_source_command(self, shell, tmp_path, capsys):
        script = tmp_path / "script"
        script.write_text("echo 'sourced'\n")
        assert run(shell, f"source {script}") == 0
        assert capsys.readouterr().out == "sourced\n"

    def test_recursive_source(self, shell, tmp_path, capsys):
        script = tmp_path / "script"
        script.write_text(f"source {script}\n")
        assert not shell.source_file(str(script))
        assert "Recursive :source" in capsys.readouterr().err


class TestJoinContinuations:
    def test_joins_and_drops_blank_lines(self):
        assert _join_continuations(["echo 1", "  \\ + 2", "", "pwd"]) == ["echo 1 + 2", "pwd"]

    def test_leading_continuation_is_kept(self):
        assert _join_continuations(["\\x"]) == ["\\x"]


class TestPrompt:
    def test_prompt(self, shell):
        assert shell.get_prompt() == "/data : "

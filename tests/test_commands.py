"""Tests for slash command parsing."""

import pytest

from hecate_tui.tui.commands import ALIASES, COMMANDS, parse_command


@pytest.mark.parametrize("text", ["hello", "", "   ", "/", " / ", "what /model"])
def test_not_a_command(text):
    assert parse_command(text) is None


def test_name_and_args():
    cmd = parse_command("/model   llama3:8b  ")
    assert cmd.name == "model"
    assert cmd.args == "llama3:8b"


def test_args_keep_inner_whitespace():
    cmd = parse_command("/system You are  terse.\nAlways.")
    assert cmd.name == "system"
    assert cmd.args == "You are  terse.\nAlways."


def test_name_is_case_insensitive():
    assert parse_command("/HELP").name == "help"


@pytest.mark.parametrize("alias,target", sorted(ALIASES.items()))
def test_aliases(alias, target):
    assert parse_command(f"/{alias}").name == target


def test_aliases_point_at_known_commands():
    assert set(ALIASES.values()) <= set(COMMANDS)


def test_unknown_command_is_returned():
    cmd = parse_command("/frobnicate now")
    assert cmd.name == "frobnicate"
    assert cmd.name not in COMMANDS

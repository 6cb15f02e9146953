"""Tests for the shared validation module."""

from __future__ import annotations

from typing import Any

import pytest

from ticketry.validation import parse_field_args, sanitize_actor, validate_title


class TestSanitizeActor:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("alice", "alice"), ("  spaced  ", "spaced"), ("a" * 128, "a" * 128), ("café-bot", "café-bot")],
    )
    def test_accepts(self, value: str, expected: str) -> None:
        assert sanitize_actor(value) == (expected, None)

    @pytest.mark.parametrize(
        ("value", "fragment"),
        [
            ("", "empty"),
            ("   ", "empty"),
            ("a" * 129, "128"),
            (123, "string"),
            (None, "string"),
            ("\x00bad", "control"),
            ("\nbad", "control"),
            ("\u200b", "control"),
            ("\u202e", "control"),
        ],
    )
    def test_rejects(self, value: Any, fragment: str) -> None:
        cleaned, err = sanitize_actor(value)
        assert cleaned == ""
        assert err is not None
        assert fragment in err


class TestValidateTitle:
    def test_strips(self) -> None:
        assert validate_title("  Fix login  ") == "Fix login"

    @pytest.mark.parametrize(
        ("value", "fragment"),
        [("", "empty"), ("   ", "empty"), (None, "empty"), ("x" * 256, "255"), ("two\nlines", "single line")],
    )
    def test_rejects(self, value: Any, fragment: str) -> None:
        with pytest.raises(ValueError, match=fragment):
            validate_title(value)


class TestParseFieldArgs:
    def test_single_values(self) -> None:
        assert parse_field_args(["Type=Bug", "Due Date=2026-01-31"]) == {"Type": "Bug", "Due Date": "2026-01-31"}

    def test_repeated_name_collects_list(self) -> None:
        assert parse_field_args(["Labels=ui", "Labels=db", "Labels=api"]) == {"Labels": ["ui", "db", "api"]}

    def test_value_may_contain_equals(self) -> None:
        assert parse_field_args(["Assignee=a=b"]) == {"Assignee": "a=b"}

    def test_empty_value_is_none(self) -> None:
        assert parse_field_args(["Estimate="]) == {"Estimate": None}

    def test_name_is_stripped(self) -> None:
        assert parse_field_args([" Type =Bug"]) == {"Type": "Bug"}

    @pytest.mark.parametrize(("pair", "fragment"), [("Type", "expected Name=value"), ("=Bug", "cannot be empty")])
    def test_rejects(self, pair: str, fragment: str) -> None:
        with pytest.raises(ValueError, match=fragment):
            parse_field_args([pair])

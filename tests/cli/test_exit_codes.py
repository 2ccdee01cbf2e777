"""Tests for exit codes module."""

import pytest

from tidesync.cli.exit_codes import ExitCode


class TestExitCode:
    """Tests for the ExitCode constants."""

    def test_standard_codes(self) -> None:
        assert ExitCode.SUCCESS == 0
        assert ExitCode.GENERAL_ERROR == 1
        assert ExitCode.CANCELLED == 130

    def test_codes_are_unique(self) -> None:
        codes = [
            value for name, value in vars(ExitCode).items()
            if name.isupper() and not name.startswith("_")
        ]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize(
        "code,name",
        [
            (0, "SUCCESS"),
            (2, "CONFIGURATION_ERROR"),
            (6, "STORAGE_ERROR"),
            (8, "NOT_FOUND"),
            (130, "CANCELLED"),
        ],
    )
    def test_get_name(self, code: int, name: str) -> None:
        assert ExitCode.get_name(code) == name

    def test_get_name_unknown(self) -> None:
        assert ExitCode.get_name(42) == "UNKNOWN(42)"

    def test_get_description(self) -> None:
        assert ExitCode.get_description(ExitCode.NOT_FOUND) == "Job is not registered"

    def test_get_description_unknown(self) -> None:
        assert ExitCode.get_description(42) == "Unknown exit code: 42"

    def test_every_code_described(self) -> None:
        for name, value in vars(ExitCode).items():
            if name.isupper() and not name.startswith("_"):
                assert not ExitCode.get_description(value).startswith("Unknown")

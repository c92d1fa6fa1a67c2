"""
End-to-end tests for the command-line interface.
"""

import logging

import pytest
import yaml

from main import main, parse_simulation_item
from exceptions import InvalidInputError


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.delenv("DB_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("EMAIL_ENABLED", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "database": {"data_dir": str(tmp_path / "data"), "path": "cli.db"},
        "logging": {"level": "WARNING"},
    }))
    yield str(path)
    logging.getLogger().handlers = []


def run(config_path, *args):
    return main(["--config", config_path, *args])


class TestCli:
    """Tests for main()."""

    def test_expense_over_budget_prints_alert(self, config_path, capsys):
        assert run(config_path, "user", "create", "--email", "alice@example.com", "--name", "Alice") == 0
        assert run(config_path, "budget", "create", "--user", "1", "--category", "Food",
                   "--limit", "100", "--period", "monthly", "--start", "2020-01-01") == 0
        capsys.readouterr()

        assert run(config_path, "expense", "add", "--user", "1", "--amount", "150", "--category", "Food") == 0

        out = capsys.readouterr().out
        assert "[budget_exceeded] Your Food budget has been exceeded by $50.00." in out

        assert run(config_path, "notifications", "count", "--user", "1") == 0
        assert "Unread notifications: 1" in capsys.readouterr().out

    def test_simulation_round_trip(self, config_path, capsys):
        run(config_path, "user", "create", "--email", "bob@example.com")
        assert run(config_path, "sim", "create", "--user", "1", "--name", "Plans",
                   "--item", "20:Food:2023-03-01:Lunch", "--item", "5:Travel:2023-03-02") == 0
        capsys.readouterr()

        assert run(config_path, "sim", "convert", "--user", "1", "--id", "1") == 0
        assert "into 2 expenses" in capsys.readouterr().out

        assert run(config_path, "expense", "list", "--user", "1") == 0
        out = capsys.readouterr().out
        assert "Lunch" in out
        assert "$20.00" in out

    def test_not_found_exits_non_zero(self, config_path, capsys):
        assert run(config_path, "budget", "delete", "--user", "1", "--id", "42") == 2
        assert "Budget not found" in capsys.readouterr().err

    def test_invalid_input_exits_non_zero(self, config_path, capsys):
        assert run(config_path, "budget", "create", "--user", "1", "--category", "Food",
                   "--limit", "-5") == 2
        assert "Limit must be greater than zero" in capsys.readouterr().err

    def test_missing_config_exits_non_zero(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "nope.yaml"), "user", "show", "--id", "1"]) == 1
        assert "Error loading config" in capsys.readouterr().err

    def test_no_command_prints_help(self, config_path, capsys):
        assert main(["--config", config_path]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestParseSimulationItem:
    """Tests for parse_simulation_item."""

    def test_description_may_contain_colons(self):
        item = parse_simulation_item("12.50:Food:2023-03-01:Dinner: with friends")

        assert item.description == "Dinner: with friends"
        assert item.category == "Food"

    def test_too_few_parts(self):
        with pytest.raises(InvalidInputError):
            parse_simulation_item("12.50:Food")

import json

import pytest
from typer.testing import CliRunner

from heyclaw import __version__
from heyclaw.cli.commands import app
from heyclaw.config import loader


runner = CliRunner()


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setattr(loader, "get_config_path", lambda: path)
    monkeypatch.delenv("HEYCHAT_APP_TOKEN", raising=False)
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_onboard_writes_camel_case_config(config_path) -> None:
    result = runner.invoke(app, ["onboard"])

    assert result.exit_code == 0
    heychat = json.loads(config_path.read_text())["channels"]["heychat"]
    assert heychat["groupPolicy"] == "open"
    assert heychat["heartbeatIntervalS"] == 30.0


def test_status_lists_default_account_with_warning(config_path) -> None:
    config_path.write_text(json.dumps({"channels": {"heychat": {"token": "tok-0123456789"}}}))

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "default" in result.stdout
    assert "groupPolicy" in result.stdout


def test_send_without_token_fails(config_path) -> None:
    result = runner.invoke(app, ["send", "1:2", "hello"])

    assert result.exit_code == 1
    assert "token not configured" in result.stdout


def test_gateway_without_accounts_fails(config_path) -> None:
    result = runner.invoke(app, ["gateway"])

    assert result.exit_code == 1


def test_send_defaults_to_first_named_account(config_path) -> None:
    config_path.write_text(json.dumps({"channels": {"heychat": {"accounts": {"work": {}}}}}))

    result = runner.invoke(app, ["send", "1:2", "hello"])

    assert result.exit_code == 1
    assert "not configured for work" in result.stdout


def test_status_shows_named_accounts(config_path) -> None:
    config_path.write_text(
        json.dumps({"channels": {"heychat": {"accounts": {"work": {"token": "tok-0123456789", "name": "Work bot"}}}}})
    )

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "work" in result.stdout
    assert "Work" in result.stdout
    assert "config" in result.stdout

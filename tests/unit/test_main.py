from __future__ import annotations

from pathlib import Path

import pytest

from workflow_automation import main as main_module
from workflow_automation.main import build_parser, main


@pytest.fixture
def app_env(monkeypatch, tmp_path: Path, private_key_pem: str) -> pytest.MonkeyPatch:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main_module, "configure_logging", lambda level: None)
    monkeypatch.setenv("GITHUB_APP_CLIENT_ID", "Iv1.abc")
    monkeypatch.setenv("GITHUB_APP_PRIVATE_KEY", private_key_pem)
    monkeypatch.setenv("GITHUB_APP_INSTALLATION_ID", "4242")
    monkeypatch.setenv("GITHUB_APP_ID", "1234")
    monkeypatch.setenv("OIDC_EXPECTED_AUDIENCE", "https://github.com/octo-org")
    monkeypatch.setenv("OIDC_EXPECTED_REPOSITORY_OWNER", "octo-org")
    monkeypatch.setenv("OIDC_EXPECTED_REPOSITORY", "octo-org/octo-repo")
    return monkeypatch


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_check_config_reports_identifiers_without_secrets(
    app_env, capsys, private_key_pem: str
) -> None:
    assert main(["check-config"]) == 0

    out = capsys.readouterr().out
    assert "Installation id:      4242" in out
    assert "Assertion lifetime:   660s" in out
    assert "PRIVATE KEY" not in out


def test_check_config_rejects_bad_key(app_env, capsys) -> None:
    app_env.setenv("GITHUB_APP_PRIVATE_KEY", "not a key")

    assert main(["check-config"]) == 1
    assert "Private key check failed" in capsys.readouterr().err


def test_invalid_configuration_exits_with_2(app_env, capsys) -> None:
    app_env.delenv("OIDC_EXPECTED_AUDIENCE")

    assert main(["check-config"]) == 2
    assert "OIDC_EXPECTED_AUDIENCE" in capsys.readouterr().err


def test_serve_runs_uvicorn(app_env, monkeypatch) -> None:
    import uvicorn

    seen: dict[str, object] = {}

    def fake_run(app, **kwargs):
        seen["app"] = app
        seen.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)

    assert main(["serve", "--port", "8080"]) == 0
    assert seen["port"] == 8080
    assert seen["host"] == "127.0.0.1"
    assert seen["app"].state.service is not None

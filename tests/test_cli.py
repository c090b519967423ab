"""
Tests for the command-line front end.
"""
import json

import pytest

from placeprep_client import cli
from placeprep_client.credential_store import ClientStorage, CredentialPair, CredentialStore


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a temp root and keep its logging off the root logger."""
    monkeypatch.setattr(cli, "get_default_root", lambda: tmp_path)
    monkeypatch.setattr(cli, "setup_logging", lambda root, verbose=False: None)
    monkeypatch.setenv("PLACEPREP_BACKEND_URL", "http://testserver")
    monkeypatch.setenv("PLACEPREP_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.delenv("PLACEPREP_STORAGE_NAMESPACE", raising=False)
    return tmp_path


def _store(root):
    return CredentialStore(ClientStorage("placeprep", root / "storage"))


class TestParser:
    def test_request_arguments(self):
        args = cli.build_parser().parse_args(
            ["request", "POST", "/companies", "--json", '{"name": "Acme"}', "--param", "a=1"]
        )
        assert args.command == "request"
        assert args.method == "POST"
        assert args.body == '{"name": "Acme"}'
        assert args.param == ["a=1"]

    def test_parse_params(self):
        assert cli._parse_params(["page=2", "q=a=b"]) == {"page": "2", "q": "a=b"}
        assert cli._parse_params([]) is None

    def test_parse_params_rejects_bare_key(self):
        with pytest.raises(ValueError):
            cli._parse_params(["page"])


class TestMain:
    def test_logout(self, cli_env):
        _store(cli_env).set(CredentialPair("a1", "r1"))

        assert cli.main(["logout"]) == 0
        assert _store(cli_env).get() is None

    def test_status(self, cli_env, capsys):
        assert cli.main(["status"]) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["api_url"] == "http://testserver/api"
        assert status["authenticated"] is False

    def test_backend_url_flag(self, cli_env, capsys):
        assert cli.main(["--backend-url", "https://api.example.com", "status"]) == 0
        assert "https://api.example.com/api" in capsys.readouterr().out

    def test_request_without_session_exits_2(self, cli_env, api_mock):
        assert cli.main(["request", "GET", "/dashboard"]) == 2

    def test_request_error_exits_1(self, cli_env, api_mock):
        api_mock.get("/companies/9").respond(404, json={"detail": "Company not found"})

        assert cli.main(["request", "GET", "/companies/9"]) == 1

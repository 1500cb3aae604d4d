"""
Unit tests for kanidm_unix_verify.cli module.

Exit status is 0 only for a credential the server confirmed valid.
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from kanidm_unix_verify import cli
from kanidm_unix_verify.client import create_kanidm_client
from tests.conftest import BASE_URL


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "kanidm"
    path.write_text(f'uri = "{BASE_URL}"\n')
    return path


@pytest.fixture
def patched_client(monkeypatch, fake_server):
    """Route the CLI's client through the fake server."""

    def factory(base_url, verify=True):
        return create_kanidm_client(base_url, verify=verify, http_client=fake_server.client())

    monkeypatch.setattr(cli, "create_kanidm_client", factory)
    return fake_server


def _invoke(*args, env=None):
    return CliRunner().invoke(cli.main, list(args), env=env)


class TestRun:
    """Tests for cli.run exit codes."""

    def test_valid_credential(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        patched_client.unix_reply = (200, {"valid": True}, {})
        assert cli.run("bob", "hunter2", config_file) == cli.EXIT_VALID

    def test_invalid_credential(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        patched_client.unix_reply = (200, {"valid": False}, {})
        assert cli.run("bob", "wrong", config_file) == cli.EXIT_FAILURE

    def test_flag_absent(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        patched_client.unix_reply = (200, {}, {})
        assert cli.run("bob", "hunter2", config_file) == cli.EXIT_FAILURE

    def test_verification_server_error(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        patched_client.unix_reply = (500, {}, {})
        assert cli.run("bob", "hunter2", config_file) == cli.EXIT_FAILURE

    def test_anonymous_unavailable(self, config_file, patched_client):
        patched_client.queue_auth({"choose": ["password"]})
        assert cli.run("bob", "hunter2", config_file) == cli.EXIT_FAILURE
        assert patched_client.unix_requests == []

    def test_missing_config(self, tmp_path, patched_client):
        assert cli.run("bob", "hunter2", tmp_path / "missing") == cli.EXIT_FAILURE
        assert patched_client.requests == []

    def test_missing_ca_bundle(self, tmp_path, capsys):
        path = tmp_path / "kanidm"
        path.write_text(f'uri = "{BASE_URL}"\nca_path = "{tmp_path / "missing.pem"}"\n')
        assert cli.run("bob", "hunter2", path) == cli.EXIT_FAILURE
        assert "Cannot load CA bundle" in capsys.readouterr().err

    def test_password_from_environment(self, config_file, patched_client, monkeypatch):
        monkeypatch.setenv(cli.PASSWORD_ENV, "from-env")
        patched_client.queue_anonymous_flow()
        assert cli.run("bob", None, config_file) == cli.EXIT_VALID
        assert b"from-env" in patched_client.unix_requests[0].content

    def test_password_prompted(self, config_file, patched_client, monkeypatch):
        monkeypatch.delenv(cli.PASSWORD_ENV, raising=False)
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": "typed")
        patched_client.queue_anonymous_flow()
        assert cli.run("bob", None, config_file) == cli.EXIT_VALID
        assert b"typed" in patched_client.unix_requests[0].content

    def test_password_prompt_eof(self, config_file, patched_client, monkeypatch):
        monkeypatch.delenv(cli.PASSWORD_ENV, raising=False)

        def no_input(prompt=""):
            raise EOFError

        monkeypatch.setattr(cli.getpass, "getpass", no_input)
        assert cli.run("bob", None, config_file) == cli.EXIT_FAILURE
        assert patched_client.requests == []


class TestMain:
    """Tests for the click command."""

    def test_exit_zero_when_valid(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        result = _invoke("--config", str(config_file), "bob", "hunter2")
        assert result.exit_code == 0

    def test_exit_nonzero_on_server_error(self, config_file, patched_client):
        patched_client.queue_anonymous_flow()
        patched_client.unix_reply = (500, {}, {})
        result = _invoke("-c", str(config_file), "bob", "hunter2")
        assert result.exit_code == 1
        assert "Failed to verify credential" in result.output

    def test_exit_nonzero_on_authentication_failure(self, config_file, patched_client):
        patched_client.queue_auth({"denied": "anonymous disabled"})
        result = _invoke("-c", str(config_file), "-v", "bob", "hunter2")
        assert result.exit_code == 1
        assert "Failed to authenticate" in result.output

    def test_username_required(self):
        result = _invoke()
        assert result.exit_code == 2

    def test_version(self):
        result = _invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

import json
from unittest.mock import patch

import jwt
from click.testing import CliRunner

from prompt_enhancer.cli import cli

from conftest import API_KEY, JWT_SECRET

BASE_ENV = {"APP_ENV": "test", "API_KEY": API_KEY, "JWT_SECRET": JWT_SECRET, "AI_PROVIDER": "template"}


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Prompt Enhancer" in result.output
    for command in ("serve", "token", "enhance"):
        assert command in result.output


def test_cli_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_token_is_accepted_by_server_secret():
    runner = CliRunner()
    result = runner.invoke(cli, ["token", "--client-id", "ops"], env=BASE_ENV)

    assert result.exit_code == 0, result.output
    claims = jwt.decode(result.output.strip(), JWT_SECRET, algorithms=["HS256"])
    assert claims["clientId"] == "ops"
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] >= 86400


def test_token_json_output():
    runner = CliRunner()
    result = runner.invoke(cli, ["token", "-e", "120", "--json"], env=BASE_ENV)

    assert result.exit_code == 0, result.output
    body = json.loads(result.output)
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == 120
    claims = jwt.decode(body["access_token"], JWT_SECRET, algorithms=["HS256"])
    assert claims["clientId"] == "cli-client"


def test_token_requires_secret():
    runner = CliRunner()
    result = runner.invoke(cli, ["token"], env={**BASE_ENV, "JWT_SECRET": ""})

    assert result.exit_code != 0
    assert "JWT_SECRET" in result.output


def test_invalid_environment_is_reported():
    runner = CliRunner()
    result = runner.invoke(cli, ["token"], env={**BASE_ENV, "APP_ENV": "staging"})

    assert result.exit_code != 0
    assert "APP_ENV" in result.output


def test_enhance_with_templates():
    runner = CliRunner()
    result = runner.invoke(cli, ["enhance", "Write about APIs", "-f", "bullet"], env=BASE_ENV)

    assert result.exit_code == 0, result.output
    assert "Original prompt:" in result.output
    assert "Enhanced prompt:" in result.output
    assert "bullet points" in result.output


def test_enhance_rejects_unknown_format():
    result = CliRunner().invoke(cli, ["enhance", "Write about APIs", "-f", "haiku"], env=BASE_ENV)
    assert result.exit_code == 2


@patch("prompt_enhancer.http_server.run_http_server")
def test_serve_passes_bind_address(mock_run):
    result = CliRunner().invoke(cli, ["serve", "--host", "0.0.0.0", "--port", "9000"])

    assert result.exit_code == 0, result.output
    mock_run.assert_called_once_with(host="0.0.0.0", port=9000)

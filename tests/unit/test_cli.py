"""Tests for the bus-rpc CLI."""

import json

import pytest
from click.testing import CliRunner

from bus_rpc.cli import main

CLEAN_ENV = {
    "BUS_RPC_TIMEOUT": "",
    "BUS_RPC_VARIANT": "",
    "BUS_RPC_REQUEST_CHANNEL": "",
    "BUS_RPC_REPLY_CHANNEL": "",
}


@pytest.fixture
def runner():
    return CliRunner()


class TestDemoCommand:
    """Test `bus-rpc demo`."""

    @pytest.mark.parametrize("variant", ["direct", "shared"])
    def test_demo_json(self, runner, variant):
        """Both variants answer the demo requests and deliver one message."""
        result = runner.invoke(main, ["demo", "--variant", variant, "--json"], env=CLEAN_ENV)

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["variant"] == variant
        assert data["GREETING"] == {"greeting": "hey to you too."}
        assert data["HOW_ARE_YOU"] == {"good": True}
        assert data["HEY"] == [{"callMessage": "Hey Alice!"}]
        assert "MISSING" not in data

    def test_demo_missing_direct_times_out(self, runner):
        """Direct variant: a topic without responder times out."""
        result = runner.invoke(
            main,
            ["demo", "--variant", "direct", "--missing", "--timeout", "0.1", "--json"],
            env=CLEAN_ENV,
        )

        assert result.exit_code == 0, result.output
        missing = json.loads(result.output)["MISSING"]
        assert missing["error"] == "RequestTimeoutError"
        assert missing["elapsed"] >= 0.09

    def test_demo_missing_shared_fails_fast(self, runner):
        """Shared variant: a topic without responder fails immediately."""
        result = runner.invoke(
            main,
            ["demo", "--variant", "shared", "--missing", "--timeout", "5", "--json"],
            env=CLEAN_ENV,
        )

        assert result.exit_code == 0, result.output
        missing = json.loads(result.output)["MISSING"]
        assert missing["error"] == "NoResponderError"
        assert missing["message"] == "no responder for MISSING"
        assert missing["elapsed"] < 1.0

    def test_demo_table_output(self, runner):
        """Human-readable output lists each topic."""
        result = runner.invoke(main, ["demo"], env=CLEAN_ENV)

        assert result.exit_code == 0, result.output
        assert "Variant: direct" in result.output
        assert "GREETING" in result.output
        assert "received 1 message(s)" in result.output

    def test_demo_rejects_bad_timeout(self, runner):
        """Invalid settings are reported as usage errors."""
        result = runner.invoke(main, ["demo", "--timeout", "0"], env=CLEAN_ENV)

        assert result.exit_code == 2

    def test_demo_uses_env_variant(self, runner):
        """BUS_RPC_VARIANT is honoured when --variant is not given."""
        env = {**CLEAN_ENV, "BUS_RPC_VARIANT": "shared"}
        result = runner.invoke(main, ["demo", "--json"], env=env)

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["variant"] == "shared"


class TestConfigCommand:
    """Test `bus-rpc config`."""

    def test_config_json(self, runner):
        """Effective configuration as JSON."""
        env = {**CLEAN_ENV, "BUS_RPC_TIMEOUT": "1.5"}
        result = runner.invoke(main, ["config", "--json"], env=env)

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "timeout": 1.5,
            "variant": "direct",
            "request_channel": "rpc.request",
            "reply_channel": "rpc.reply",
        }

    def test_config_table(self, runner):
        """Human-readable configuration."""
        result = runner.invoke(main, ["config"], env=CLEAN_ENV)

        assert result.exit_code == 0, result.output
        assert "Timeout:          2.0s" in result.output

    def test_log_level_option(self, runner):
        """--log-level is accepted before the subcommand."""
        result = runner.invoke(main, ["--log-level", "debug", "config"], env=CLEAN_ENV)

        assert result.exit_code == 0, result.output

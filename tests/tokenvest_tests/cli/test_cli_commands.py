"""
Tests for the tokenvest command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from tokenvest.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "state.json")


@pytest.fixture
def invoke(runner, state_file):
    """Run a command against the temporary registry at a fixed time."""

    def _invoke(*args, now=50, json_output=True):
        base = ["--state-file", state_file, "--now", str(now)]
        if json_output:
            base.append("--json-output")
        return runner.invoke(cli, base + list(args), env={"TOKENVEST_LOG_DIR": ""})

    return _invoke


@pytest.fixture
def funded(invoke):
    """Keyed registry with 1000 units for the admin."""

    def _setup(*init_args):
        assert invoke("init", "--admin", "0xadmin", *init_args).exit_code == 0
        assert invoke("fund", "0xadmin", "1000").exit_code == 0

    return _setup


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


class TestInit:
    def test_init_creates_registry(self, invoke, state_file):
        stats = _json(invoke("init", "--admin", "0xadmin"))
        assert stats["admission"] == "keyed"
        assert stats["cliff_policy"] == "delay"
        assert stats["total_streams"] == 0

    def test_init_refuses_to_overwrite(self, invoke):
        invoke("init", "--admin", "0xadmin")
        result = invoke("init", "--admin", "0xother")
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_init_force_overwrites(self, invoke):
        invoke("init", "--admin", "0xadmin")
        stats = _json(invoke("init", "--admin", "0xother", "--admission", "instances", "--force"))
        assert stats["admission"] == "instances"

    def test_commands_require_registry(self, invoke):
        result = invoke("stats")
        assert result.exit_code != 0
        assert "tokenvest init" in result.output


class TestStreamCommands:
    def test_create_and_claim_keyed(self, invoke, funded):
        funded()
        stream = _json(
            invoke(
                "create", "--caller", "0xadmin", "--beneficiary", "0xalice",
                "--amount", "100", "--start", "100", "--cliff", "50", "--duration", "100",
            )
        )
        assert stream["stream_id"] == "0xalice"
        assert stream["unlock_begin_time"] == 150
        assert stream["unlock_end_time"] == 250

        assert _json(invoke("claimable", "0xalice", now=200))["claimable"] == 50
        claimed = _json(invoke("claim", "--caller", "0xalice", now=200))
        assert claimed["claimed"] == 50
        assert claimed["completed"] is False

        claimed = _json(invoke("claim", "--caller", "0xalice", now=300))
        assert claimed["claimed"] == 50
        assert claimed["completed"] is True

        assert _json(invoke("balance", "0xalice"))["balance"] == 100
        assert _json(invoke("balance", "0xadmin"))["balance"] == 900

    def test_instance_handles(self, invoke, funded):
        funded("--admission", "instances", "--cliff-policy", "immediate")
        handle = _json(
            invoke(
                "create", "--caller", "0xadmin", "--beneficiary", "0xalice",
                "--amount", "100", "--start", "100", "--cliff", "50", "--duration", "100",
            )
        )["stream_id"]
        assert handle.startswith("0x") and len(handle) == 42

        shown = _json(invoke("show", handle, now=150))
        assert shown["claimable"] == 75
        assert shown["cliff_policy"] == "immediate"

        claimed = _json(invoke("claim", "--caller", "0xrelayer", "--stream-id", handle, now=500))
        assert claimed["claimed"] == 100
        assert claimed["completed"] is True
        assert _json(invoke("list", "--beneficiary", "0xalice")) == []

    def test_list_streams(self, invoke, funded):
        funded()
        for who in ("0xalice", "0xbob"):
            invoke(
                "create", "--caller", "0xadmin", "--beneficiary", who,
                "--amount", "10", "--start", "100", "--duration", "10",
            )
        listed = _json(invoke("list"))
        assert sorted(s["beneficiary"] for s in listed) == ["0xalice", "0xbob"]

    def test_table_output(self, invoke, funded):
        funded()
        result = invoke("stats", json_output=False)
        assert result.exit_code == 0
        assert "total_locked" in result.output

    def test_stats_after_claim(self, invoke, funded):
        funded()
        invoke(
            "create", "--caller", "0xadmin", "--beneficiary", "0xalice",
            "--amount", "100", "--start", "100", "--duration", "100",
        )
        invoke("claim", "--caller", "0xalice", now=150)
        stats = _json(invoke("stats"))
        assert stats["total_locked"] == 50
        assert stats["total_claimed"] == 50


class TestErrors:
    def test_start_in_past_rejected(self, invoke, funded):
        funded()
        result = invoke(
            "create", "--caller", "0xadmin", "--beneficiary", "0xalice",
            "--amount", "100", "--start", "50", "--duration", "100",
        )
        assert result.exit_code == 1
        assert "Error" in result.output
        assert _json(invoke("list")) == []

    def test_unauthorized_create_rejected(self, invoke, funded):
        funded()
        invoke("fund", "0xmallory", "100")
        result = invoke(
            "create", "--caller", "0xmallory", "--beneficiary", "0xalice",
            "--amount", "100", "--start", "100", "--duration", "100",
        )
        assert result.exit_code == 1
        assert _json(invoke("balance", "0xmallory"))["balance"] == 100

    def test_nothing_to_claim(self, invoke, funded):
        funded()
        invoke(
            "create", "--caller", "0xadmin", "--beneficiary", "0xalice",
            "--amount", "100", "--start", "100", "--duration", "100",
        )
        result = invoke("claim", "--caller", "0xalice", now=99)
        assert result.exit_code == 1
        assert "Nothing to claim" in result.output

    def test_invalid_fund_amount(self, invoke, funded):
        funded()
        assert invoke("fund", "0xalice", "0").exit_code == 1


class TestAdminCommands:
    def test_handover(self, invoke, funded):
        funded()
        proposed = _json(invoke("admin", "propose", "--caller", "0xadmin", "--new-admin", "0xnew"))
        assert proposed["pending_admin"] == "0xnew"
        assert proposed["admin"] == "0xadmin"

        assert invoke("admin", "accept", "--caller", "0xmallory").exit_code == 1
        accepted = _json(invoke("admin", "accept", "--caller", "0xnew"))
        assert accepted["admin"] == "0xnew"
        assert accepted["pending_admin"] is None

    def test_stream_creator_can_create(self, invoke, funded):
        funded()
        invoke("fund", "0xcreator", "500")
        _json(invoke("admin", "set-creator", "--caller", "0xadmin", "--creator", "0xcreator"))
        stream = _json(
            invoke(
                "create", "--caller", "0xcreator", "--beneficiary", "0xalice",
                "--amount", "100", "--start", "100", "--duration", "100",
            )
        )
        assert stream["owner"] == "0xcreator"


def test_calc_is_stateless(invoke):
    result = _json(
        invoke(
            "calc", "--amount", "100", "--start", "100", "--cliff", "50",
            "--duration", "100", "--cliff-policy", "immediate", now=150,
        )
    )
    assert result["unlocked"] == 75
    assert result["unlock_begin_time"] == 100
    assert result["unlock_end_time"] == 200


def test_calc_rejects_cliff_above_amount(invoke):
    result = invoke(
        "calc", "--amount", "100", "--start", "100", "--cliff", "150",
        "--duration", "100", "--cliff-policy", "immediate", now=100,
    )
    assert result.exit_code == 1
    assert "cliff amount exceeds" in result.output

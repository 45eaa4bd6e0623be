"""
Tests for the operator tooling and configuration.
"""

import json

import pytest

from tools import manage
from tools.verify import ChainVerifier, VerificationResult, main as verify_main
from voteledger.api.routes import serialize_chain
from voteledger.config import ConfigError, ServiceConfig
from voteledger.db import ChainStore


@pytest.fixture
def export():
    store = ChainStore()
    store.initialize()
    for value in ("yes", "no", "yes"):
        store.append(value)
    return serialize_chain(store.get_all())


@pytest.fixture
def export_file(tmp_path, export):
    path = tmp_path / "chain.json"
    path.write_text(json.dumps(export), encoding="utf-8")
    return path


class TestChainVerifier:

    def test_valid_export_verified(self, export):
        report = ChainVerifier(export).verify()

        assert report.result == VerificationResult.VERIFIED
        assert report.vote_count == 4
        assert report.checks_failed == []
        assert report.details["tail_hash"] == export[-1]["hash"]

    def test_tampered_value_detected(self, export):
        export[2]["value"] = "maybe"
        report = ChainVerifier(export).verify()
        assert report.result == VerificationResult.TAMPERED

    def test_broken_linkage_detected(self, export):
        # Reordering keeps every hash valid but breaks linkage
        export[1], export[2] = export[2], export[1]
        report = ChainVerifier(export).verify()
        assert report.result == VerificationResult.TAMPERED
        assert any("position" in failure for failure in report.checks_failed)

    def test_stuffed_genesis_detected(self, export):
        export[0]["value"] = "stuffed"
        report = ChainVerifier(export).verify()
        assert report.result == VerificationResult.TAMPERED

    @pytest.mark.parametrize("chain", [
        {},
        [],
        [{"index": 0}],
        [{"index": "0", "timestamp": "x", "value": "", "hash": "", "prev_hash": ""}],
        [{"index": 0, "timestamp": "2024-01-01T00:00:00", "value": "", "hash": "", "prev_hash": ""}],
    ])
    def test_invalid_format(self, chain):
        report = ChainVerifier(chain).verify()
        assert report.result == VerificationResult.INVALID_FORMAT

    def test_cli_exit_codes(self, export_file, tmp_path, capsys):
        assert verify_main([str(export_file), "--json"]) == 0
        output = json.loads(capsys.readouterr().out)
        assert output["result"] == "VERIFIED"

        assert verify_main([str(tmp_path / "missing.json")]) == 3


class TestManage:

    def test_hash_vote_prints_golden_hash(self, capsys):
        code = manage.main([
            "hash-vote",
            "--index", "0",
            "--timestamp", "2024-01-15T12:30:45.123456Z",
        ])

        assert code == 0
        assert capsys.readouterr().out.strip() == (
            "48a79fc38d96c1de166ee92afbc66dfd9cdfa66f2a446667700d0cd650549af2"
        )

    def test_hash_vote_rejects_naive_timestamp(self, capsys):
        code = manage.main(["hash-vote", "--index", "0", "--timestamp", "2024-01-15T12:30:45"])
        assert code == 1
        assert "timezone-naive" in capsys.readouterr().out

    def test_verify_chain_ok(self, export_file):
        assert manage.main(["verify-chain", str(export_file)]) == 0

    def test_verify_chain_tampered(self, export, tmp_path):
        export[3]["value"] = "no"
        path = tmp_path / "tampered.json"
        path.write_text(json.dumps(export), encoding="utf-8")

        assert manage.main(["verify-chain", str(path)]) == 1

    def test_no_command_prints_help(self, capsys):
        assert manage.main([]) == 1
        assert "verify-chain" in capsys.readouterr().out


class TestServiceConfig:

    def test_defaults(self, monkeypatch):
        for var in ("VOTELEDGER_HOST", "VOTELEDGER_PORT", "VOTELEDGER_LOG_LEVEL"):
            monkeypatch.delenv(var, raising=False)

        config = ServiceConfig.from_env()

        assert config.port == 9000
        assert config.host == "0.0.0.0"
        assert config.log_level == "INFO"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("VOTELEDGER_PORT", "8081")
        monkeypatch.setenv("VOTELEDGER_LOG_LEVEL", "debug")

        config = ServiceConfig.from_env()

        assert config.port == 8081
        assert config.log_level == "DEBUG"

    def test_cli_overrides_env(self):
        config = ServiceConfig(port=8081).with_overrides(port=9100, host="127.0.0.1")
        assert config.port == 9100
        assert config.host == "127.0.0.1"

    @pytest.mark.parametrize("port", ["abc", "0", "70000"])
    def test_invalid_port(self, monkeypatch, port):
        monkeypatch.setenv("VOTELEDGER_PORT", port)
        with pytest.raises(ConfigError):
            ServiceConfig.from_env()

from __future__ import annotations

import logging

import pytest

import app
from config import DEFAULT_BUNDLER_URL, DEFAULT_ENTRY_POINT, DEFAULT_NETWORK, DETERMINISTIC_DEPLOYER_TX
from errors import ConfigurationError, MissingFactory
from funding import FundingDecision
from runner import RunReport, UserOpResult


def test_parser_defaults() -> None:
    opts = app.build_parser().parse_args([])
    assert opts.network == DEFAULT_NETWORK
    assert opts.bundlerUrl == DEFAULT_BUNDLER_URL
    assert opts.entryPoint == DEFAULT_ENTRY_POINT
    assert opts.nonce is None
    assert opts.deployFactory is False
    assert opts.selfBundler is False


def test_options_reach_config(monkeypatch) -> None:
    seen = {}

    def fake_run(config):
        seen["config"] = config
        return RunReport("0x" + "44" * 20, FundingDecision(0, 0, False, 0), [])

    monkeypatch.setattr(app, "run", fake_run)
    monkeypatch.setenv("FACTORY_ARTIFACT", "/tmp/factory.json")

    assert app.main(["--nonce", "12", "--deployFactory", "--mnemonic", "/tmp/key"]) == 0
    config = seen["config"]
    assert config.index == 12
    assert config.deploy_factory is True
    assert config.mnemonic_file == "/tmp/key"
    assert config.factory_artifact == "/tmp/factory.json"


def test_random_index_when_nonce_omitted(monkeypatch) -> None:
    seen = {}

    def fake_run(config):
        seen["config"] = config
        return RunReport("0x" + "44" * 20, FundingDecision(0, 0, False, 0), [])

    monkeypatch.setattr(app, "run", fake_run)

    app.main([])
    assert seen["config"].index > 0


def test_success_exits_zero(monkeypatch, caplog) -> None:
    report = RunReport(
        "0x" + "44" * 20,
        FundingDecision(4, 0, True, 4),
        [UserOpResult("0x01", "0xaa"), UserOpResult("0x02", "0xbb")],
    )
    monkeypatch.setattr(app, "run", lambda config: report)

    with caplog.at_level(logging.INFO):
        assert app.main([]) == 0
    assert "userOpHash=0x02" in caplog.text


def test_missing_factory_exits_non_zero(monkeypatch, caplog) -> None:
    def fail(config):
        raise MissingFactory("0x" + "33" * 20)

    monkeypatch.setattr(app, "run", fail)

    assert app.main([]) == 1
    assert "run with --deployFactory" in caplog.text


def test_stack_traces_on_request(monkeypatch, caplog) -> None:
    def fail(config):
        raise ConfigurationError("fatal: no account. use --mnemonic (needed to fund account)")

    monkeypatch.setattr(app, "run", fail)

    assert app.main(["--show-stack-traces"]) == 1
    assert any(record.exc_info for record in caplog.records)


def test_bad_self_bundler_port_exits_non_zero(monkeypatch, caplog) -> None:
    def unreachable(config):
        raise AssertionError("run must not start")

    monkeypatch.setattr(app, "run", unreachable)
    monkeypatch.setenv("SELF_BUNDLER_PORT", "abc")

    assert app.main([]) == 1
    assert "Run failed" in caplog.text
    assert "abc" in caplog.text


def test_deployer_proxy_tx_env_override(monkeypatch) -> None:
    seen = {}

    def fake_run(config):
        seen["config"] = config
        return RunReport("0x" + "44" * 20, FundingDecision(0, 0, False, 0), [])

    monkeypatch.setattr(app, "run", fake_run)
    monkeypatch.delenv("DEPLOYER_PROXY_TX", raising=False)
    app.main([])
    assert seen["config"].deployer_proxy_tx == DETERMINISTIC_DEPLOYER_TX

    monkeypatch.setenv("DEPLOYER_PROXY_TX", "0xf86c")
    app.main([])
    assert seen["config"].deployer_proxy_tx == "0xf86c"


def test_factory_artifact_help_says_it_is_required(capsys) -> None:
    with pytest.raises(SystemExit):
        app.build_parser().parse_args(["--help"])
    help_text = capsys.readouterr().out
    assert "required" in help_text
    assert "FACTORY_ARTIFACT" in help_text

"""Tests for engine configuration."""

import json

import pytest

from cipherbridge.bridge.bridge_types import ChainKind, TokenKind
from cipherbridge.bridge.config import EngineConfig, default_tokens
from cipherbridge.errors import ConfigurationError
from cipherbridge.logging import LogLevel


class TestDefaultTokens:
    """Test the token registry."""

    def test_four_tokens(self):
        tokens = default_tokens()
        assert {(t.chain, t.kind) for t in tokens} == {
            (ChainKind.EVM, TokenKind.NATIVE),
            (ChainKind.EVM, TokenKind.STABLE),
            (ChainKind.SVM, TokenKind.NATIVE),
            (ChainKind.SVM, TokenKind.STABLE),
        }

    def test_decimals(self):
        config = EngineConfig()
        assert config.token(ChainKind.EVM, TokenKind.NATIVE).decimals == 18
        assert config.token(ChainKind.SVM, TokenKind.NATIVE).decimals == 9
        assert config.token(ChainKind.SVM, TokenKind.STABLE).decimals == 6
        assert config.token(ChainKind.SVM, TokenKind.STABLE).underlying == (
            config.programs.spl_usdc_mint
        )


class TestEngineConfig:
    """Test loading and validation."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.solana.rpc_url == "https://api.devnet.solana.com"
        assert config.ethereum.chain_id == 84532
        assert config.balance_poll_interval == 10.0
        assert config.programs.sol_usd_price == 200
        assert config.relay_poll_interval == 5.0
        assert config.relay_track_timeout == 600.0

    def test_round_trip(self):
        config = EngineConfig()
        config.gateway.endpoint = "https://gateway.example"
        restored = EngineConfig.from_dict(config.to_dict())
        assert restored.to_dict() == config.to_dict()

    def test_from_dict_partial(self):
        config = EngineConfig.from_dict(
            {"solana": {"commitment": "finalized"}, "log_format": "json"}
        )
        assert config.solana.commitment == "finalized"
        assert config.solana.rpc_url == "https://api.devnet.solana.com"
        assert config.log_format == "json"

    @pytest.mark.parametrize(
        "data",
        [
            {"balance_poll_interval": 0},
            {"relay_poll_interval": 0},
            {"relay_track_timeout": -5},
            {"solana": {"commitment": "eventually"}},
            {"log_level": "verbose"},
            {"log_format": "xml"},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict(data)

    def test_log_config(self):
        config = EngineConfig.from_dict({"log_level": "debug"})
        assert config.log_config().level == LogLevel.DEBUG


class TestConfigSources:
    """Test file and environment sources."""

    def test_from_env(self):
        config = EngineConfig.from_env(
            {
                "CIPHERBRIDGE_GATEWAY_URL": "https://gw.example",
                "CIPHERBRIDGE_EVM_CHAIN_ID": "8453",
                "CIPHERBRIDGE_POLL_INTERVAL": "2.5",
                "UNRELATED": "x",
            }
        )
        assert config.gateway.endpoint == "https://gw.example"
        assert config.ethereum.chain_id == 8453
        assert config.balance_poll_interval == 2.5
        assert set(config.environment_overrides) == {
            "CIPHERBRIDGE_GATEWAY_URL",
            "CIPHERBRIDGE_EVM_CHAIN_ID",
            "CIPHERBRIDGE_POLL_INTERVAL",
        }

    def test_relay_polling_from_env(self):
        config = EngineConfig.from_env(
            {
                "CIPHERBRIDGE_RELAY_POLL_INTERVAL": "0.5",
                "CIPHERBRIDGE_RELAY_TIMEOUT": "120",
            }
        )
        assert config.relay_poll_interval == 0.5
        assert config.relay_track_timeout == 120.0

    def test_bad_env_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_env({"CIPHERBRIDGE_EVM_CHAIN_ID": "base"})
        assert exc_info.value.config_key == "CIPHERBRIDGE_EVM_CHAIN_ID"

    def test_env_validated(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env({"CIPHERBRIDGE_POLL_INTERVAL": "-1"})

    def test_from_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CIPHERBRIDGE_LOG_LEVEL", "warning")
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"relay_url": "https://relay.example"}))

        config = EngineConfig.from_file(path)

        assert config.relay_url == "https://relay.example"
        assert config.log_level == "warning"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_file(tmp_path / "missing.json")

    def test_file_not_object(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            EngineConfig.from_file(path)

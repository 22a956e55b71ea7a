"""
Engine configuration for CipherBridge.

This module provides the aggregate configuration for a session: ledger
clients, deployed programs and contracts, the gateway endpoint, the local
balance store and the token registry. Values come from defaults, then an
optional JSON file, then ``CIPHERBRIDGE_*`` environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import ConfigurationError
from ..logging import LogConfig, LogLevel, get_logger
from ..storage import DatabaseConfig
from .bridge_types import ChainKind, TokenConfig, TokenKind
from .chains.ethereum.client import EthereumConfig
from .chains.ethereum.contracts import EvmContractsConfig
from .chains.solana.adapter import SolanaProgramConfig
from .chains.solana.client import SolanaConfig
from .gateway import GatewayConfig

logger = get_logger(__name__)

ENV_PREFIX = "CIPHERBRIDGE_"


def default_tokens(
    programs: Optional[SolanaProgramConfig] = None,
    contracts: Optional[EvmContractsConfig] = None,
) -> List[TokenConfig]:
    """The two token families on each ledger."""
    programs = programs or SolanaProgramConfig()
    contracts = contracts or EvmContractsConfig()
    return [
        TokenConfig(ChainKind.EVM, TokenKind.NATIVE, "cETH", 18, contracts.confidential_eth),
        TokenConfig(
            ChainKind.EVM,
            TokenKind.STABLE,
            "cUSDC",
            6,
            contracts.confidential_usdc,
            underlying=contracts.mock_usdc,
        ),
        TokenConfig(ChainKind.SVM, TokenKind.NATIVE, "cSOL", 9, programs.sol_mint),
        TokenConfig(
            ChainKind.SVM,
            TokenKind.STABLE,
            "cUSDC",
            6,
            programs.usdc_mint,
            underlying=programs.spl_usdc_mint,
        ),
    ]


@dataclass
class EngineConfig:
    """Configuration for one engine session."""

    solana: SolanaConfig = field(default_factory=SolanaConfig)
    programs: SolanaProgramConfig = field(default_factory=SolanaProgramConfig)
    ethereum: EthereumConfig = field(default_factory=EthereumConfig)
    contracts: EvmContractsConfig = field(default_factory=EvmContractsConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    balance_poll_interval: float = 10.0
    relay_url: str = "https://api.testnet.relay.link"
    relay_poll_interval: float = 5.0
    relay_track_timeout: float = 600.0
    log_level: str = "info"
    log_format: str = "text"
    environment_overrides: Dict[str, Any] = field(default_factory=dict)

    def tokens(self) -> List[TokenConfig]:
        return default_tokens(self.programs, self.contracts)

    def token(self, chain: ChainKind, kind: TokenKind) -> TokenConfig:
        for token in self.tokens():
            if token.chain == chain and token.kind == kind:
                return token
        raise ConfigurationError(f"No {kind.value} token configured on {chain.value}")

    def log_config(self) -> LogConfig:
        return LogConfig(level=LogLevel(self.log_level), format_type=self.log_format)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "solana": self.solana.to_dict(),
            "programs": self.programs.to_dict(),
            "ethereum": self.ethereum.to_dict(),
            "contracts": self.contracts.to_dict(),
            "gateway": self.gateway.to_dict(),
            "database": self.database.to_dict(),
            "balance_poll_interval": self.balance_poll_interval,
            "relay_url": self.relay_url,
            "relay_poll_interval": self.relay_poll_interval,
            "relay_track_timeout": self.relay_track_timeout,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create from dictionary."""
        defaults = cls()
        config = cls(
            solana=SolanaConfig.from_dict(data.get("solana", {})),
            programs=SolanaProgramConfig.from_dict(data.get("programs", {})),
            ethereum=EthereumConfig.from_dict(data.get("ethereum", {})),
            contracts=EvmContractsConfig.from_dict(data.get("contracts", {})),
            gateway=GatewayConfig.from_dict(data.get("gateway", {})),
            database=DatabaseConfig.from_dict(data.get("database", {})),
            balance_poll_interval=float(
                data.get("balance_poll_interval", defaults.balance_poll_interval)
            ),
            relay_url=data.get("relay_url", defaults.relay_url),
            relay_poll_interval=float(
                data.get("relay_poll_interval", defaults.relay_poll_interval)
            ),
            relay_track_timeout=float(
                data.get("relay_track_timeout", defaults.relay_track_timeout)
            ),
            log_level=data.get("log_level", defaults.log_level),
            log_format=data.get("log_format", defaults.log_format),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load a JSON config file, then apply environment overrides."""
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Cannot read config file {path}: {e}", config_key="path", cause=e
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must hold a JSON object")
        config = cls.from_dict(data)
        config.apply_environment_overrides()
        return config

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "EngineConfig":
        """Defaults overlaid with ``CIPHERBRIDGE_*`` variables."""
        config = cls()
        config.apply_environment_overrides(environ)
        return config

    def apply_environment_overrides(self, environ: Optional[Dict[str, str]] = None) -> None:
        """Apply environment variable overrides."""
        environ = os.environ if environ is None else environ
        env_mappings = {
            "SOLANA_RPC_URL": (self.solana, "rpc_url", str),
            "SOLANA_COMMITMENT": (self.solana, "commitment", str),
            "SOLANA_PROGRAM_ID": (self.programs, "program_id", str),
            "SOL_USD_PRICE": (self.programs, "sol_usd_price", int),
            "EVM_RPC_URL": (self.ethereum, "rpc_url", str),
            "EVM_CHAIN_ID": (self.ethereum, "chain_id", int),
            "GATEWAY_URL": (self.gateway, "endpoint", str),
            "GATEWAY_TIMEOUT": (self.gateway, "timeout", float),
            "GATEWAY_API_KEY": (self.gateway, "api_key", str),
            "DATABASE_PATH": (self.database, "database_path", str),
            "POLL_INTERVAL": (self, "balance_poll_interval", float),
            "RELAY_URL": (self, "relay_url", str),
            "RELAY_POLL_INTERVAL": (self, "relay_poll_interval", float),
            "RELAY_TIMEOUT": (self, "relay_track_timeout", float),
            "LOG_LEVEL": (self, "log_level", str),
            "LOG_FORMAT": (self, "log_format", str),
        }

        for suffix, (target, attr_name, attr_type) in env_mappings.items():
            env_var = ENV_PREFIX + suffix
            env_value = environ.get(env_var)
            if env_value is None:
                continue
            try:
                value = attr_type(env_value)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid environment variable {env_var}={env_value}: {e}",
                    config_key=env_var,
                    config_value=env_value,
                    cause=e,
                ) from e
            setattr(target, attr_name, value)
            self.environment_overrides[env_var] = value
            logger.debug(f"Config override from {env_var}")
        self.validate()

    def validate(self) -> None:
        if self.balance_poll_interval <= 0:
            raise ConfigurationError(
                "balance_poll_interval must be positive",
                config_key="balance_poll_interval",
                config_value=self.balance_poll_interval,
            )
        for key in ("relay_poll_interval", "relay_track_timeout"):
            if getattr(self, key) <= 0:
                raise ConfigurationError(
                    f"{key} must be positive", config_key=key, config_value=getattr(self, key)
                )
        if self.solana.commitment not in ("processed", "confirmed", "finalized"):
            raise ConfigurationError(
                f"Unknown commitment level: {self.solana.commitment}",
                config_key="solana.commitment",
                config_value=self.solana.commitment,
            )
        try:
            LogLevel(self.log_level)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="log_level",
                config_value=self.log_level,
            ) from e
        if self.log_format not in ("text", "json"):
            raise ConfigurationError(
                f"Unknown log format: {self.log_format}",
                config_key="log_format",
                config_value=self.log_format,
            )

"""
Contract surface of the confidential token deployment on Base Sepolia.

This module provides:
- Deployed contract addresses and service-fee constants
- The minimal function table the adapter calls
- ContractCall, a single call descriptor with selector and ABI-encoded args
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from eth_abi import encode
from web3 import Web3

from ....errors import ConfigurationError, ValidationError

DEFAULT_GAS = 300_000
FHE_GAS = 15_000_000
TRANSFER_GAS = 5_000_000

# Function table
WRAP_NATIVE = "wrap()"
WRAP_WRAPPED = "wrap(uint256)"
UNWRAP = "unwrap(uint256)"
APPROVE = "approve(address,uint256)"
APPROVE_ENCRYPTED = "approve(address,bytes)"
TRANSFER_ENCRYPTED = "transfer(address,bytes)"
BALANCE_OF = "balanceOf(address)"
SWAP_USDC_FOR_ETH = "swapUsdcForEth(bytes)"
SWAP_ETH_FOR_USDC = "swapEthForUsdc(bytes)"
ADD_LIQUIDITY = "addLiquidity(bytes,bytes)"
GET_ETH_USD_PRICE = "getEthUsdPrice()"

# Effectively unlimited encrypted allowance.
MAX_APPROVAL = 10**27


def function_selector(signature: str) -> bytes:
    """First four bytes of ``keccak256(signature)``."""
    return bytes(Web3.keccak(text=signature)[:4])


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``name(type,...)`` into its name and argument types."""
    if "(" not in signature or not signature.endswith(")"):
        raise ValidationError(
            f"Malformed function signature: {signature}", field="signature"
        )
    name, _, rest = signature.partition("(")
    inner = rest[:-1]
    types = [part.strip() for part in inner.split(",")] if inner else []
    return name, types


@dataclass(frozen=True)
class ContractCall:
    """One contract invocation: target, function, args, attached value, gas."""

    address: str
    signature: str
    args: Tuple[Any, ...] = ()
    value: int = 0
    gas: int = DEFAULT_GAS

    def __post_init__(self):
        _, types = parse_signature(self.signature)
        if len(types) != len(self.args):
            raise ValidationError(
                f"{self.signature} takes {len(types)} args, got {len(self.args)}",
                field="args",
                value=len(self.args),
                expected=len(types),
            )

    @property
    def function_name(self) -> str:
        return parse_signature(self.signature)[0]

    @property
    def abi_types(self) -> List[str]:
        return parse_signature(self.signature)[1]

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)

    @property
    def calldata(self) -> bytes:
        """Selector followed by the ABI-encoded arguments."""
        return self.selector + encode(self.abi_types, list(self.args))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "address": self.address,
            "signature": self.signature,
            "selector": "0x" + self.selector.hex(),
            "value": self.value,
            "gas": self.gas,
            "data": "0x" + self.calldata.hex(),
        }


@dataclass
class EvmContractsConfig:
    """Deployed contracts and per-call service fees (wei)."""

    mock_usdc: str = "0x27017A64Ba67ae473981AA498691A76478DaB16b"
    confidential_eth: str = "0xbEa755785ECF89a51fdc9b0136c5ECb9DB6b82Ef"
    confidential_usdc: str = "0x7cBe942C48d9e9849b6599c19D27822b7f9f6868"
    swap: str = "0xA2B9076c699f9bb06DB767d2684a2D8AEf8aD893"
    approve_fee: int = Web3.to_wei("0.05", "ether")
    transfer_fee: int = Web3.to_wei("0.01", "ether")
    swap_fee: int = Web3.to_wei("0.01", "ether")
    liquidity_fee: int = Web3.to_wei("0.1", "ether")

    def __post_init__(self):
        for key in ("mock_usdc", "confidential_eth", "confidential_usdc", "swap"):
            value = getattr(self, key)
            if not Web3.is_address(value):
                raise ConfigurationError(
                    f"Invalid contract address for {key}: {value}",
                    config_key=f"contracts.{key}",
                    config_value=value,
                )
            setattr(self, key, Web3.to_checksum_address(value))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvmContractsConfig":
        """Create from dictionary."""
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        for key in ("approve_fee", "transfer_fee", "swap_fee", "liquidity_fee"):
            if key in known:
                known[key] = int(known[key])
        return cls(**known)

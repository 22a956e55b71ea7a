"""
Confidentiality gateway client.

The gateway is the only party that can turn a plaintext into a ciphertext
handle or reveal a handle's plaintext. This module defines the narrow
interface the engine depends on and an HTTP implementation of it. Neither
caches nor retries; every failure surfaces as a gateway error.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..errors import (
    DecryptionDenied,
    EncryptionUnavailable,
    RangeError,
    ValidationError,
)
from ..logging import get_logger
from .bridge_types import EncryptedAmount, EncryptionContext
from .codec import hex_to_bytes

logger = get_logger(__name__)

MAX_PLAINTEXT = 2**256


def check_plaintext(plaintext: int) -> int:
    """Plaintexts are unsigned 256-bit integers."""
    if isinstance(plaintext, bool) or not isinstance(plaintext, int):
        raise RangeError(
            f"Plaintext must be an integer, got {type(plaintext).__name__}",
            width=32,
            field="plaintext",
        )
    if plaintext < 0 or plaintext >= MAX_PLAINTEXT:
        raise RangeError(
            f"Plaintext {plaintext} is outside the euint256 range",
            width=32,
            field="plaintext",
            value=plaintext,
        )
    return plaintext


class ConfidentialityGateway(ABC):
    """Encrypt / decrypt provider."""

    @abstractmethod
    async def encrypt(
        self, plaintext: int, context: EncryptionContext, decimals: int = 0
    ) -> EncryptedAmount:
        """Encrypt ``plaintext`` for the owner and program in ``context``."""

    @abstractmethod
    async def decrypt(
        self, handles: Sequence[EncryptedAmount], authorization: str
    ) -> List[int]:
        """Reveal each handle; one plaintext per handle, in order."""


@dataclass
class GatewayConfig:
    """HTTP gateway configuration."""

    endpoint: str = "http://localhost:8080"
    timeout: float = 30.0
    api_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"endpoint": self.endpoint, "timeout": self.timeout, "api_key": self.api_key}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            endpoint=data.get("endpoint", defaults.endpoint),
            timeout=float(data.get("timeout", defaults.timeout)),
            api_key=data.get("api_key", defaults.api_key),
        )


class HttpGateway(ConfidentialityGateway):
    """JSON-over-HTTP gateway client.

    ``POST /encrypt`` takes ``{"plaintext", "owner", "program", "value_kind"}``
    and answers ``{"ciphertext": "0x..."}``. ``POST /decrypt`` takes
    ``{"handles": [...], "authorization"}`` and answers ``{"plaintexts": [...]}``.
    """

    def __init__(self, config: Optional[GatewayConfig] = None):
        self.config = config or GatewayConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self.config.endpoint.rstrip("/") + path
        session = self._get_session()
        async with session.post(url, json=payload) as response:
            response.raise_for_status()
            return await response.json()

    async def encrypt(
        self, plaintext: int, context: EncryptionContext, decimals: int = 0
    ) -> EncryptedAmount:
        check_plaintext(plaintext)
        payload = {
            "plaintext": str(plaintext),
            "owner": context.owner,
            "program": context.program,
            "value_kind": context.value_kind,
        }
        try:
            body = await self._post("/encrypt", payload)
            ciphertext = hex_to_bytes(body["ciphertext"])
        except (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            AttributeError,
            KeyError,
            TypeError,
            ValueError,
            ValidationError,
        ) as e:
            logger.error(f"Encryption failed for {context.program}: {e}")
            raise EncryptionUnavailable(
                f"Gateway could not encrypt: {e}",
                endpoint=self.config.endpoint,
                cause=e,
            ) from e
        if not ciphertext:
            raise EncryptionUnavailable(
                "Gateway returned an empty ciphertext", endpoint=self.config.endpoint
            )
        return EncryptedAmount(
            ciphertext=ciphertext,
            decimals=decimals,
            owner=context.owner,
            program=context.program,
            value_kind=context.value_kind,
        )

    async def decrypt(
        self, handles: Sequence[EncryptedAmount], authorization: str
    ) -> List[int]:
        payload = {
            "handles": [handle.hex() for handle in handles],
            "authorization": authorization,
        }
        try:
            body = await self._post("/decrypt", payload)
            plaintexts = [int(value) for value in body["plaintexts"]]
        except (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            AttributeError,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            logger.error(f"Decryption of {len(handles)} handle(s) failed: {e}")
            raise DecryptionDenied(
                f"Gateway could not decrypt: {e}",
                endpoint=self.config.endpoint,
                cause=e,
            ) from e
        if len(plaintexts) != len(handles):
            raise DecryptionDenied(
                f"Gateway returned {len(plaintexts)} plaintexts for {len(handles)} handles",
                endpoint=self.config.endpoint,
            )
        return plaintexts

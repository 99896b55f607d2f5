"""Permit (ERC-2612) capability probing"""

import asyncio
import logging
from typing import Any

from web3 import AsyncWeb3

from .abi import ERC20_PERMIT_ABI, ZERO_BYTES32
from .log import suppress_rpc_noise
from .types import PermitCapability, PermitMethod, TokenInfo

logger = logging.getLogger(__name__)


class ChainReader:
    """Read-only token contract calls over AsyncWeb3."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    @classmethod
    def from_rpc(cls, rpc_url: str) -> "ChainReader":
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url)))

    async def read(self, token_address: str, function_name: str, *args: Any) -> Any:
        token = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address),
            abi=ERC20_PERMIT_ABI,
        )
        return await getattr(token.functions, function_name)(*args).call()

    async def _read_or(self, default: Any, token_address: str, function_name: str, *args: Any) -> Any:
        try:
            return await self.read(token_address, function_name, *args)
        except Exception as e:
            logger.debug("%s() read failed, using %r", function_name, default, extra={"context": {"error": str(e)}})
            return default

    async def token_info(self, token_address: str, owner_address: str) -> TokenInfo:
        """
        Fetch name, symbol, balance and decimals in parallel.

        Each field falls back independently ("Unknown", 0, 18) so a token
        with a non-standard ABI still renders.
        """
        owner = AsyncWeb3.to_checksum_address(owner_address)
        name, symbol, balance, decimals = await asyncio.gather(
            self._read_or("Unknown", token_address, "name"),
            self._read_or("Unknown", token_address, "symbol"),
            self._read_or(0, token_address, "balanceOf", owner),
            self._read_or(18, token_address, "decimals"),
        )
        return TokenInfo(name=name, symbol=symbol, balance=int(balance), decimals=int(decimals))


class PermitProber:
    """
    Decides whether a token accepts permit signatures.

    Checks run in priority order and a failing read only moves on to the
    next check. The last resort is an optimistic "assumed by SDK" result:
    the relay quote is authoritative, and the approval inspection catches
    tokens that turn out to need an on-chain approve.
    """

    def __init__(self, reader: ChainReader):
        self.reader = reader

    async def probe(self, token_address: str, owner_address: str) -> PermitCapability:
        ctx = {"token": token_address, "owner": owner_address}

        with suppress_rpc_noise():
            try:
                separator = await self.reader.read(token_address, "DOMAIN_SEPARATOR")
                if separator and bytes(separator) != ZERO_BYTES32:
                    logger.debug("Token exposes DOMAIN_SEPARATOR", extra={"context": ctx})
                    return PermitCapability(supported=True, method=PermitMethod.DOMAIN_SEPARATOR)
            except Exception as e:
                logger.debug("DOMAIN_SEPARATOR probe failed: %s", e, extra={"context": ctx})

            try:
                await self.reader.read(token_address, "nonces", AsyncWeb3.to_checksum_address(owner_address))
                logger.debug("Token exposes nonces()", extra={"context": ctx})
                return PermitCapability(supported=True, method=PermitMethod.NONCE_PROBE)
            except Exception as e:
                logger.debug("nonces probe failed: %s", e, extra={"context": ctx})

        logger.warning("Permit support could not be confirmed on-chain; deferring to relay quote", extra={"context": ctx})
        return PermitCapability(supported=True, method=PermitMethod.ASSUMED_BY_SDK)

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address
from web3 import AsyncWeb3

from .errors import USER_REJECTED_CODE

logger = logging.getLogger(__name__)

RequestChannel = Callable[[dict], Awaitable[Any]]
ConfirmFn = Callable[[str, list], bool]


class WalletRequestError(Exception):
    """EIP-1193 provider error"""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code


class Wallet:
    """
    EIP-1193 style wallet.

    ``request`` is stored on the instance rather than looked up on the class
    so it has a stable identity and can be overridden for the duration of a
    guarded call, then put back.
    """

    address: str

    def __init__(self):
        self.request: RequestChannel = self._handle_request

    async def _handle_request(self, args: dict) -> Any:
        raise NotImplementedError


class LocalWallet(Wallet):
    """Private-key wallet; ``confirm`` plays the part of the user prompt."""

    def __init__(self, private_key: str, w3: AsyncWeb3 | None = None, chain_id: int = 137, confirm: ConfirmFn | None = None):
        super().__init__()
        self.account = Account.from_key(private_key)
        self.address = to_checksum_address(self.account.address)
        self.w3 = w3
        self.chain_id = chain_id
        self.confirm = confirm

    async def _handle_request(self, args: dict) -> Any:
        method = args.get("method")
        params = list(args.get("params") or [])

        if method in ("eth_accounts", "eth_requestAccounts"):
            return [self.address]
        if method == "eth_chainId":
            return hex(self.chain_id)

        if method in ("eth_signTypedData_v4", "eth_sendTransaction"):
            if self.confirm is not None and not self.confirm(method, params):
                raise WalletRequestError(USER_REJECTED_CODE, "User rejected the request.")

        if method == "eth_signTypedData_v4":
            return self.sign_typed_data(params[1])
        if method == "eth_sendTransaction":
            return await self.send_transaction(params[0])

        raise WalletRequestError(4200, f"Unsupported method: {method}")

    def sign_typed_data(self, typed_data: dict | str) -> str:
        """Sign an EIP-712 payload and return the 0x-prefixed signature"""
        if isinstance(typed_data, str):
            typed_data = json.loads(typed_data)

        message = encode_typed_data(full_message=typed_data)
        signed = self.account.sign_message(message)
        return "0x" + signed.signature.hex().removeprefix("0x")

    async def send_transaction(self, tx: dict) -> str:
        if self.w3 is None:
            raise WalletRequestError(4900, "Wallet is not connected to a chain")

        tx = dict(tx)
        tx.setdefault("from", self.address)
        tx.setdefault("chainId", self.chain_id)
        if "nonce" not in tx:
            tx["nonce"] = await self.w3.eth.get_transaction_count(self.address)
        if "gas" not in tx:
            tx["gas"] = await self.w3.eth.estimate_gas(tx)
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx["gasPrice"] = await self.w3.eth.gas_price

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = "0x" + tx_hash.hex().removeprefix("0x")
        logger.info("Sent transaction %s", tx_hex, extra={"context": {"to": tx.get("to")}})
        return tx_hex


@dataclass(frozen=True)
class WalletMatcher:
    id: str
    name: str
    flags: tuple[str, ...]

    def matches(self, provider: Any) -> bool:
        return any(bool(getattr(provider, flag, False)) for flag in self.flags)


# Ranked: several wallets also set isMetaMask, so it goes last.
WALLET_MATCHERS = [
    WalletMatcher("rabby", "Rabby", ("isRabby",)),
    WalletMatcher("gate", "Gate Wallet", ("isGateWallet",)),
    WalletMatcher("trust", "Trust Wallet", ("isTrust", "isTrustWallet")),
    WalletMatcher("metamask", "MetaMask", ("isMetaMask",)),
]

UNKNOWN_WALLET = WalletMatcher("unknown", "Unknown Wallet", ())


def identify_wallet(provider: Any, matchers: list[WalletMatcher] = WALLET_MATCHERS) -> WalletMatcher:
    for matcher in matchers:
        if matcher.matches(provider):
            return matcher
    return UNKNOWN_WALLET


def detect_wallets(providers: list[Any], matchers: list[WalletMatcher] = WALLET_MATCHERS) -> list[WalletMatcher]:
    """Identify injected providers, dropping unknown ones and duplicates."""
    found: list[WalletMatcher] = []
    for provider in providers:
        matcher = identify_wallet(provider, matchers)
        if matcher is not UNKNOWN_WALLET and matcher not in found:
            found.append(matcher)
    return found


async def request_typed_signature(request: RequestChannel, address: str, typed_data: dict) -> str:
    return await request({
        "method": "eth_signTypedData_v4",
        "params": [address, json.dumps(typed_data)],
    })

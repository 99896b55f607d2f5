"""Client for the MEE relay (quote, execute, super-transaction receipts)"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import requests
from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address, to_hex

from .abi import find_function, function_signature
from .config import MEE_API_URL, MEE_VERSION
from .errors import ConfirmationTimeout, NetworkError, ServiceError
from .types import Quote
from .wallet import Wallet, request_typed_signature

logger = logging.getLogger(__name__)

FINAL_SUCCESS = {"MINED_SUCCESS", "SUCCESS", "COMPLETED"}
FINAL_FAILURE = {"MINED_FAIL", "FAILED", "REVERTED"}


@dataclass(frozen=True)
class ChainConfiguration:
    chain_id: int
    rpc_url: str
    version: str = MEE_VERSION


@dataclass(frozen=True)
class Instruction:
    chain_id: int
    to: str
    call_data: bytes
    value: int = 0

    def to_payload(self) -> dict:
        return {
            "chainId": self.chain_id,
            "to": self.to,
            "data": to_hex(self.call_data),
            "value": str(self.value),
        }


@dataclass(frozen=True)
class Trigger:
    """Tells the relay which token/amount may be pulled in by permit."""
    chain_id: int
    token_address: str
    amount: int

    def to_payload(self) -> dict:
        return {
            "chainId": self.chain_id,
            "tokenAddress": self.token_address,
            "amount": str(self.amount),
        }


@dataclass
class MultichainAccount:
    signer: Wallet
    chains: list[ChainConfiguration] = field(default_factory=list)

    @property
    def address(self) -> str:
        return self.signer.address

    def chain(self, chain_id: int) -> ChainConfiguration:
        for chain in self.chains:
            if chain.chain_id == chain_id:
                return chain
        raise ServiceError(f"Chain {chain_id} is not configured on this account")

    def build_composable(self, abi: list[dict], chain_id: int, to: str, function_name: str, args: list) -> Instruction:
        """Encode one contract call for the given chain."""
        self.chain(chain_id)
        entry = find_function(abi, function_name)
        selector = function_signature_to_4byte_selector(function_signature(entry))
        arg_types = [arg["type"] for arg in entry["inputs"]]
        return Instruction(
            chain_id=chain_id,
            to=to_checksum_address(to),
            call_data=selector + encode(arg_types, args),
        )


def to_multichain_account(signer: Wallet, chains: list[ChainConfiguration]) -> MultichainAccount:
    return MultichainAccount(signer=signer, chains=list(chains))


class MeeClient:
    """
    HTTP client for the relay.

    Blocking ``requests`` calls run on a worker thread so callers can await
    them. Transport problems raise NetworkError, HTTP or payload level
    denials raise ServiceError. Nothing is retried here.
    """

    def __init__(
        self,
        account: MultichainAccount,
        api_key: str,
        base_url: str = MEE_API_URL,
        poll_interval: float = 2.0,
        receipt_timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.account = account
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    def _call(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, headers=self._headers(), timeout=30)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"Network error reaching {url}: {e}") from e

        if response.status_code >= 400:
            raise ServiceError(
                f"Relay request failed: HTTP {response.status_code} - {response.text}",
                {"status": response.status_code, "path": path},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ServiceError(f"Relay returned a non-JSON response: {response.text[:200]}") from e

        if isinstance(data, dict) and data.get("errors"):
            raise ServiceError(f"Relay rejected the request: {data['errors']}", {"path": path})
        return data

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        return await asyncio.to_thread(self._call, method, path, payload)

    async def get_quote(self, sponsorship: bool, trigger: Trigger, instructions: list[Instruction]) -> Quote:
        payload = {
            "ownerAddress": self.account.address,
            "sponsorship": sponsorship,
            "trigger": trigger.to_payload(),
            "instructions": [instruction.to_payload() for instruction in instructions],
            "versions": {str(c.chain_id): c.version for c in self.account.chains},
        }
        data = await self._request("POST", "/quote-permit", payload)
        logger.debug("Quote received", extra={"context": {"hash": (data.get("quote") or {}).get("hash")}})
        return Quote.from_payload(data, sponsorship=sponsorship)

    async def execute(self, quote: Quote) -> dict:
        """
        Collect the user's authorisation for each payload and submit.

        Permit quotes ask the wallet for an EIP-712 signature; on-chain
        quotes ask it to send a transaction. Every call goes through
        ``signer.request`` as it is at that moment.
        """
        signer = self.account.signer
        signed = []
        for item in quote.raw.get("payloadToSign") or []:
            if quote.raw.get("quoteType") == "onchain":
                tx = dict(item.get("transaction") or {})
                tx.setdefault("from", signer.address)
                signature = await signer.request({"method": "eth_sendTransaction", "params": [tx]})
            else:
                signature = await request_typed_signature(signer.request, signer.address, item["signablePayload"])
            signed.append({**item, "signature": signature})

        data = await self._request("POST", "/exec", {**quote.raw, "payloadToSign": signed})
        return {"hash": data.get("hash") or data.get("supertxHash") or ""}

    async def _poll_receipt(self, tx_hash: str) -> dict:
        while True:
            data = await self._request("GET", f"/explorer/{tx_hash}")
            status = str(data.get("transactionStatus", "")).upper()
            if status in FINAL_SUCCESS:
                return data
            if status in FINAL_FAILURE:
                raise ServiceError(f"Super-transaction {tx_hash} failed with status {status}", {"receipt": data})
            await asyncio.sleep(self.poll_interval)

    async def wait_for_receipt(self, tx_hash: str) -> dict:
        if self.receipt_timeout is None:
            return await self._poll_receipt(tx_hash)
        try:
            return await asyncio.wait_for(self._poll_receipt(tx_hash), self.receipt_timeout)
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeout(f"No settlement for {tx_hash} after {self.receipt_timeout}s") from e


def create_mee_client(account: MultichainAccount, api_key: str, **kwargs: Any) -> MeeClient:
    return MeeClient(account=account, api_key=api_key, **kwargs)

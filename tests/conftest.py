"""
Shared fakes for the transfer flow tests.
"""

from typing import Any

import pytest

from fusion_transfer.abi import APPROVE_SELECTOR, TRANSFER_SELECTOR
from fusion_transfer.config import CHAINS, Settings
from fusion_transfer.types import Quote, UserOperation
from fusion_transfer.wallet import LocalWallet

# Well-known development key, never funded on mainnet
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TOKEN = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TX_HASH = "0x" + "ab" * 32


def permit_typed_data(owner: str = OWNER, token: str = TOKEN) -> dict:
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        },
        "primaryType": "Permit",
        "domain": {"name": "Test Token", "version": "1", "chainId": 137, "verifyingContract": token},
        "message": {
            "owner": owner,
            "spender": RECIPIENT,
            "value": 1500000000000000000,
            "nonce": 0,
            "deadline": 1900000000,
        },
    }


def make_quote(*selectors: bytes) -> Quote:
    return Quote(
        sponsorship_requested=True,
        operations=tuple(UserOperation(call_data=s + b"\x00" * 64, target_contract=OWNER) for s in selectors),
    )


def clean_quote() -> Quote:
    return make_quote(TRANSFER_SELECTOR)


def approval_quote() -> Quote:
    return make_quote(TRANSFER_SELECTOR, APPROVE_SELECTOR)


class FakeReader:
    """Chain reader returning canned values; exceptions are raised."""

    def __init__(self, values: dict[str, Any] | None = None):
        self.values = values or {}
        self.calls: list[tuple] = []

    async def read(self, token_address: str, function_name: str, *args: Any) -> Any:
        self.calls.append((token_address, function_name, args))
        value = self.values.get(function_name, RuntimeError(f"execution reverted: {function_name}"))
        if isinstance(value, BaseException):
            raise value
        return value

    async def token_info(self, token_address, owner_address):
        raise AssertionError("not used")


class FakeRelayClient:
    """Relay stand-in that signs through the account's wallet like the real client."""

    def __init__(
        self,
        quote: Quote | None = None,
        exec_result: Any = None,
        send_approval: bool = False,
        receipt_error: BaseException | None = None,
        quote_error: BaseException | None = None,
    ):
        self.quote = quote or clean_quote()
        self.exec_result = {"hash": TX_HASH} if exec_result is None else exec_result
        self.send_approval = send_approval
        self.receipt_error = receipt_error
        self.quote_error = quote_error
        self.account = None
        self.api_key = None
        self.quote_calls: list[dict] = []
        self.executed = 0
        self.waited: list[str] = []

    async def get_quote(self, sponsorship, trigger, instructions):
        self.quote_calls.append({"sponsorship": sponsorship, "trigger": trigger, "instructions": instructions})
        if self.quote_error is not None:
            raise self.quote_error
        return self.quote

    async def execute(self, quote):
        self.executed += 1
        signer = self.account.signer
        if self.send_approval:
            await signer.request({
                "method": "eth_sendTransaction",
                "params": [{"to": TOKEN, "data": "0x" + APPROVE_SELECTOR.hex() + "00" * 64}],
            })
        await signer.request({
            "method": "eth_signTypedData_v4",
            "params": [signer.address, permit_typed_data(signer.address)],
        })
        return self.exec_result

    async def wait_for_receipt(self, tx_hash):
        self.waited.append(tx_hash)
        if self.receipt_error is not None:
            raise self.receipt_error
        return {"transactionStatus": "MINED_SUCCESS"}


class RecordingDisplay:
    def __init__(self):
        self.statuses: list[tuple[str, str]] = []
        self.tx_hashes: list[str] = []
        self.refreshes = 0

    def set_status(self, kind, message):
        self.statuses.append((kind, message))

    def set_tx_hash(self, tx_hash):
        self.tx_hashes.append(tx_hash)

    async def refresh_balance(self, token_address, owner_address):
        self.refreshes += 1


class PromptLog:
    """Stands in for the user: records prompts and answers them."""

    def __init__(self, approve: bool = True):
        self.approve = approve
        self.prompts: list[str] = []

    def __call__(self, method, params):
        self.prompts.append(method)
        return self.approve


def client_factory_for(fake: FakeRelayClient):
    created = []

    def factory(account, api_key, **kwargs):
        fake.account = account
        fake.api_key = api_key
        created.append(account)
        return fake

    factory.created = created
    return factory


@pytest.fixture
def settings():
    return Settings(
        chain=CHAINS["polygon"],
        api_key="test-api-key",
        project_id="test-project",
        default_token_address=TOKEN,
        default_token_decimals=18,
        default_token_symbol="TST",
    )


@pytest.fixture
def prompts():
    return PromptLog()


@pytest.fixture
def wallet(prompts):
    return LocalWallet(PRIVATE_KEY, chain_id=137, confirm=prompts)

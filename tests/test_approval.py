import asyncio

import pytest
from conftest import TOKEN, approval_quote, clean_quote, make_quote

from fusion_transfer.abi import APPROVE_SELECTOR, TRANSFER_SELECTOR
from fusion_transfer.approval import (
    ApprovalGuard,
    ApprovalInterceptor,
    ensure_no_approval,
    guarded_execute,
    inspect_quote,
    is_approve_call,
)
from fusion_transfer.errors import ApprovalRequired, GuardBusy, GuardTripped
from fusion_transfer.wallet import Wallet

APPROVE_DATA = "0x" + APPROVE_SELECTOR.hex() + "00" * 64


class EchoWallet(Wallet):
    address = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

    def __init__(self):
        super().__init__()
        self.forwarded = []

    async def _handle_request(self, args):
        self.forwarded.append(args)
        return "ok"


def send_tx(to, data):
    return {"method": "eth_sendTransaction", "params": [{"to": to, "data": data}]}


def test_is_approve_call():
    assert is_approve_call(APPROVE_SELECTOR + b"\x00")
    assert is_approve_call(APPROVE_DATA)
    assert is_approve_call(APPROVE_DATA.upper().replace("0X", "0x"))
    assert not is_approve_call("0xa9059cbb" + "00" * 64)
    assert not is_approve_call("")
    assert not is_approve_call(None)
    assert not is_approve_call("not hex")


def test_inspect_clean_quote():
    result = inspect_quote(clean_quote())
    assert result.clean
    assert not result.approval_detected


def test_inspect_finds_approval_anywhere_in_quote():
    result = inspect_quote(make_quote(APPROVE_SELECTOR, TRANSFER_SELECTOR, TRANSFER_SELECTOR))
    assert result.approval_detected
    assert len(result.offending) == 1


def test_inspect_empty_quote_is_clean():
    assert inspect_quote(make_quote()).clean


def test_ensure_no_approval_raises_with_gas_hint():
    with pytest.raises(ApprovalRequired, match="MATIC"):
        ensure_no_approval(approval_quote())
    ensure_no_approval(clean_quote())


def test_interceptor_blocks_approve_to_token():
    wallet = EchoWallet()
    interceptor = ApprovalInterceptor(wallet.request, TOKEN.lower())
    with pytest.raises(GuardTripped):
        asyncio.run(interceptor(send_tx(TOKEN, APPROVE_DATA)))
    assert interceptor.tripped
    assert wallet.forwarded == []


def test_interceptor_forwards_everything_else():
    wallet = EchoWallet()
    interceptor = ApprovalInterceptor(wallet.request, TOKEN)
    other_token = "0x" + "12" * 20
    requests = [
        {"method": "eth_signTypedData_v4", "params": ["0x", "{}"]},
        send_tx(TOKEN, "0xa9059cbb" + "00" * 64),
        send_tx(other_token, APPROVE_DATA),
        {"method": "eth_chainId"},
    ]
    for args in requests:
        assert asyncio.run(interceptor(args)) == "ok"
    assert wallet.forwarded == requests
    assert not interceptor.tripped


def test_guard_restores_channel_on_success():
    wallet = EchoWallet()
    original = wallet.request

    async def execute():
        assert isinstance(wallet.request, ApprovalInterceptor)
        return await wallet.request({"method": "eth_chainId"})

    assert asyncio.run(guarded_execute(wallet, TOKEN, execute)) == "ok"
    assert wallet.request is original


def test_guard_restores_channel_when_tripped():
    wallet = EchoWallet()
    original = wallet.request

    async def execute():
        return await wallet.request(send_tx(TOKEN, APPROVE_DATA))

    with pytest.raises(GuardTripped):
        asyncio.run(guarded_execute(wallet, TOKEN, execute))
    assert wallet.request is original


def test_guard_restores_channel_on_foreign_error():
    wallet = EchoWallet()
    original = wallet.request

    async def execute():
        raise ConnectionError("boom")

    with pytest.raises(ConnectionError):
        asyncio.run(guarded_execute(wallet, TOKEN, execute))
    assert wallet.request is original


def test_guard_refuses_to_nest():
    wallet = EchoWallet()
    original = wallet.request
    with ApprovalGuard(wallet, TOKEN):
        with pytest.raises(GuardBusy):
            with ApprovalGuard(wallet, TOKEN):
                pass
        assert isinstance(wallet.request, ApprovalInterceptor)
    assert wallet.request is original

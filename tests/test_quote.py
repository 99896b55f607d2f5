import asyncio
from dataclasses import replace

import pytest
from conftest import RECIPIENT, TOKEN, FakeRelayClient, approval_quote, client_factory_for
from eth_abi import decode
from eth_utils import to_checksum_address

from fusion_transfer import quote as quote_module
from fusion_transfer.abi import TRANSFER_SELECTOR
from fusion_transfer.errors import ConfigurationError, NetworkError, ValidationError
from fusion_transfer.quote import QuoteNegotiator
from fusion_transfer.types import PermitCapability, PermitMethod, TransferRequest, TransferState

CAPABILITY = PermitCapability(supported=True, method=PermitMethod.DOMAIN_SEPARATOR)


def request(amount="1.5", recipient=RECIPIENT, token=TOKEN, decimals=18):
    return TransferRequest(token_address=token, recipient_address=recipient, amount=amount, decimals=decimals)


def test_negotiate_builds_single_transfer_instruction(settings, wallet):
    fake = FakeRelayClient()
    negotiator = QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake))
    seen = []

    negotiation = asyncio.run(negotiator.negotiate(request(), CAPABILITY, on_progress=seen.append))

    assert negotiation.quote is fake.quote
    assert negotiation.client is fake
    assert negotiation.amount == 1500000000000000000
    assert fake.api_key == "test-api-key"
    assert seen == [
        TransferState.NEGOTIATING_ACCOUNT,
        TransferState.INITIALIZING_CLIENT,
        TransferState.BUILDING_INSTRUCTION,
        TransferState.REQUESTING_QUOTE,
    ]

    (call,) = fake.quote_calls
    assert call["sponsorship"] is True
    (instruction,) = call["instructions"]
    assert instruction.chain_id == 137
    assert instruction.to == to_checksum_address(TOKEN)
    assert instruction.call_data[:4] == TRANSFER_SELECTOR
    to, amount = decode(["address", "uint256"], instruction.call_data[4:])
    assert to_checksum_address(to) == RECIPIENT
    assert amount == 1500000000000000000

    trigger = call["trigger"]
    assert trigger.chain_id == 137
    assert trigger.token_address == to_checksum_address(TOKEN)
    assert trigger.amount == 1500000000000000000


def test_account_is_bound_to_signer_and_chain(settings, wallet):
    fake = FakeRelayClient()
    asyncio.run(QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake)).negotiate(request(), CAPABILITY))
    (chain,) = fake.account.chains
    assert fake.account.signer is wallet
    assert chain.chain_id == 137
    assert chain.version == "2.1.0"


def test_quote_operations_are_passed_through(settings, wallet):
    fake = FakeRelayClient(quote=approval_quote())
    negotiation = asyncio.run(
        QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake)).negotiate(request(), CAPABILITY)
    )
    assert negotiation.quote.operations == approval_quote().operations


def test_missing_api_key_fails_before_account_construction(settings, wallet, monkeypatch):
    constructed = []
    monkeypatch.setattr(quote_module, "to_multichain_account", lambda *a, **k: constructed.append(a))
    factory = client_factory_for(FakeRelayClient())
    negotiator = QuoteNegotiator(replace(settings, api_key=""), wallet, client_factory=factory)

    with pytest.raises(ConfigurationError):
        asyncio.run(negotiator.negotiate(request(), CAPABILITY))
    assert constructed == []
    assert factory.created == []


@pytest.mark.parametrize("amount", ["abc", "1.2.3", "-5", "1e3", "1_000", "1e999999", "1" + "0" * 80])
def test_malformed_amount_is_validation_error(settings, wallet, amount):
    fake = FakeRelayClient()
    negotiator = QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake))
    with pytest.raises(ValidationError):
        asyncio.run(negotiator.negotiate(request(amount=amount), CAPABILITY))
    assert fake.quote_calls == []


def test_oversized_amount_never_reaches_encoding(settings, wallet):
    fake = FakeRelayClient()
    negotiator = QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake))
    with pytest.raises(ValidationError, match="uint256"):
        asyncio.run(negotiator.negotiate(request(amount="1" + "0" * 80), CAPABILITY))
    assert fake.quote_calls == []


def test_invalid_recipient_is_validation_error(settings, wallet):
    fake = FakeRelayClient()
    negotiator = QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake))
    with pytest.raises(ValidationError, match="recipient"):
        asyncio.run(negotiator.negotiate(request(recipient="0x123"), CAPABILITY))
    assert fake.quote_calls == []


def test_relay_errors_propagate(settings, wallet):
    fake = FakeRelayClient(quote_error=NetworkError("unreachable"))
    negotiator = QuoteNegotiator(settings, wallet, client_factory=client_factory_for(fake))
    with pytest.raises(NetworkError):
        asyncio.run(negotiator.negotiate(request(), CAPABILITY))

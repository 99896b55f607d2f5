"""Sponsored quote negotiation"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from eth_utils import is_address, to_checksum_address

from .abi import ERC20_PERMIT_ABI
from .config import MEE_VERSION, Settings
from .errors import ConfigurationError, ValidationError
from .relay import ChainConfiguration, Trigger, create_mee_client, to_multichain_account
from .types import PermitCapability, Quote, TransferRequest, TransferState
from .units import parse_units
from .wallet import Wallet

logger = logging.getLogger(__name__)

ProgressFn = Callable[[TransferState], None]
ClientFactory = Callable[..., Any]


@dataclass
class Negotiation:
    """A quote plus the client that must execute it."""
    quote: Quote
    client: Any
    amount: int


class QuoteNegotiator:
    def __init__(self, settings: Settings, signer: Wallet, client_factory: ClientFactory = create_mee_client):
        self.settings = settings
        self.signer = signer
        self.client_factory = client_factory

    def _require_api_key(self) -> str:
        if not self.settings.api_key:
            raise ConfigurationError("Biconomy API key is not configured. Set BICONOMY_API_KEY and try again.")
        return self.settings.api_key

    async def negotiate(
        self,
        request: TransferRequest,
        capability: PermitCapability,
        on_progress: ProgressFn | None = None,
    ) -> Negotiation:
        """
        Build the account, the transfer instruction and the trigger, then ask
        the relay for a sponsored quote.

        The returned quote's operations are exactly what the relay sent.

        Raises:
            ConfigurationError: no API key (checked before anything else)
            ValidationError: malformed amount or address
            NetworkError / ServiceError: from the relay client
        """
        progress = on_progress or (lambda state: None)
        chain = self.settings.chain

        progress(TransferState.NEGOTIATING_ACCOUNT)
        api_key = self._require_api_key()
        account = to_multichain_account(
            self.signer,
            [ChainConfiguration(chain_id=chain.chain_id, rpc_url=chain.rpc_url, version=MEE_VERSION)],
        )

        progress(TransferState.INITIALIZING_CLIENT)
        client = self.client_factory(account, api_key, base_url=self.settings.api_url)

        progress(TransferState.BUILDING_INSTRUCTION)
        amount = parse_units(request.amount, request.decimals)
        for label, address in (("recipient", request.recipient_address), ("token", request.token_address)):
            if not is_address(address.strip()):
                raise ValidationError(f"Invalid {label} address: {address!r}")
        token = to_checksum_address(request.token_address.strip())
        recipient = to_checksum_address(request.recipient_address.strip())

        instruction = account.build_composable(
            abi=ERC20_PERMIT_ABI,
            chain_id=chain.chain_id,
            to=token,
            function_name="transfer",
            args=[recipient, amount],
        )
        trigger = Trigger(chain_id=chain.chain_id, token_address=token, amount=amount)

        progress(TransferState.REQUESTING_QUOTE)
        logger.info(
            "Requesting sponsored quote",
            extra={"context": {"token": token, "amount": amount, "permit_method": capability.method.value}},
        )
        quote = await client.get_quote(sponsorship=True, trigger=trigger, instructions=[instruction])
        return Negotiation(quote=quote, client=client, amount=amount)

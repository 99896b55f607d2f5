import asyncio
import logging
import os
from typing import Any, Protocol

from web3 import AsyncWeb3

from .approval import ApprovalGuard, ApprovalInterceptor, ensure_no_approval
from .config import Settings, load_settings
from .errors import (
    ErrorKind,
    FusionError,
    GuardTripped,
    MissingReceiptIdentifier,
    UserRejected,
    ValidationError,
    classify_error,
)
from .log import setup_logging
from .permit import ChainReader, PermitProber
from .quote import QuoteNegotiator
from .receipt import ReceiptWaiter
from .types import (
    Blocked,
    Failed,
    Rejected,
    StatusKind,
    Success,
    TransferForm,
    TransferOutcome,
    TransferRequest,
    TransferState,
)
from .units import format_units, shorten_address
from .wallet import LocalWallet, Wallet

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    TransferState.PROBING_CAPABILITY: "Verifying token permit support...",
    TransferState.NEGOTIATING_ACCOUNT: "Creating Companion Account...",
    TransferState.INITIALIZING_CLIENT: "Initializing MEE Client...",
    TransferState.BUILDING_INSTRUCTION: "Building transfer instruction...",
    TransferState.REQUESTING_QUOTE: "Getting Fusion quote...",
    TransferState.INSPECTING_APPROVALS: "Checking quote for approval calls...",
    TransferState.AWAITING_SIGNATURE: "Using permit signature - the wallet should ask for a SIGNATURE only, not an approval transaction.",
    TransferState.SUBMITTED: "Transaction submitted! Waiting for confirmation...",
}


class Display(Protocol):
    def set_status(self, kind: StatusKind, message: str) -> None: ...

    def set_tx_hash(self, tx_hash: str) -> None: ...

    async def refresh_balance(self, token_address: str, owner_address: str) -> None: ...


class LoggingDisplay:
    """Default display: writes status lines to the log."""

    def __init__(self, reader: ChainReader | None = None):
        self.reader = reader

    def set_status(self, kind: StatusKind, message: str) -> None:
        level = logging.ERROR if kind == "error" else logging.INFO
        logger.log(level, message, extra={"context": {"status": kind}})

    def set_tx_hash(self, tx_hash: str) -> None:
        logger.info("Transaction hash: %s", tx_hash)

    async def refresh_balance(self, token_address: str, owner_address: str) -> None:
        if self.reader is None:
            return
        info = await self.reader.token_info(token_address, owner_address)
        logger.info("Balance: %s %s", format_units(info.balance, info.decimals), info.symbol)


class FusionTransfer:
    """
    Drives one gasless transfer at a time through

    Idle -> ValidatingInput -> ProbingCapability -> NegotiatingAccount ->
    InitializingClient -> BuildingInstruction -> RequestingQuote ->
    InspectingApprovals -> AwaitingSignature -> Submitted -> Confirmed

    Any failure ends the attempt in Failed, Blocked or Rejected and is
    returned as a TransferOutcome. Nothing is retried; the caller re-runs.
    """

    def __init__(
        self,
        wallet: Wallet,
        settings: Settings | None = None,
        reader: ChainReader | None = None,
        prober: PermitProber | None = None,
        negotiator: QuoteNegotiator | None = None,
        display: Display | None = None,
        debug: bool = False,
    ):
        self.wallet = wallet
        self.settings = settings or load_settings()
        self.reader = reader or ChainReader.from_rpc(self.settings.chain.rpc_url)
        self.prober = prober or PermitProber(self.reader)
        self.negotiator = negotiator or QuoteNegotiator(self.settings, wallet)
        self.display = display or LoggingDisplay(self.reader)
        self.form = TransferForm(
            token_address=self.settings.default_token_address,
            decimals=self.settings.default_token_decimals,
        )
        self.state = TransferState.IDLE
        self.history: list[TransferState] = [TransferState.IDLE]
        self.tx_hash = ""
        self._in_flight = False

        if debug:
            setup_logging(logging.DEBUG)

    @property
    def processing(self) -> bool:
        return self._in_flight

    async def submit(self) -> TransferOutcome:
        """Run a transfer from the current form fields."""
        return await self.run(self.form.to_request())

    async def run(self, request: TransferRequest) -> TransferOutcome:
        if self._in_flight:
            return Failed(ErrorKind.BUSY, "A transfer is already in progress")

        self._in_flight = True
        self.state = TransferState.IDLE
        self.history = [TransferState.IDLE]
        self.tx_hash = ""
        try:
            return await self._run(request)
        finally:
            self._in_flight = False

    def _advance(self, state: TransferState) -> None:
        if self.state.terminal or state.value <= self.state.value:
            raise RuntimeError(f"Invalid transition {self.state.name} -> {state.name}")
        self.state = state
        self.history.append(state)
        logger.debug("State -> %s", state.name)

        message = STATUS_MESSAGES.get(state)
        if message:
            self.display.set_status("loading", message)

    async def _run(self, request: TransferRequest) -> TransferOutcome:
        chain = self.settings.chain

        self._advance(TransferState.VALIDATING_INPUT)
        missing = request.missing_fields()
        if missing:
            return self._finish(ValidationError(f"Please fill in all fields (missing: {', '.join(missing)})"))

        self.display.set_status("loading", "Initializing Fusion Mode...")
        interceptor: ApprovalInterceptor | None = None
        try:
            self._advance(TransferState.PROBING_CAPABILITY)
            capability = await self.prober.probe(request.token_address, self.wallet.address)

            negotiation = await self.negotiator.negotiate(request, capability, on_progress=self._advance)

            self._advance(TransferState.INSPECTING_APPROVALS)
            ensure_no_approval(negotiation.quote, chain.native_symbol)

            self._advance(TransferState.AWAITING_SIGNATURE)
            async with ApprovalGuard(self.wallet, request.token_address) as interceptor:
                result = await negotiation.client.execute(negotiation.quote)

            tx_hash = _extract_hash(result)
            if not tx_hash:
                raise MissingReceiptIdentifier("Transaction hash not received from relay")

            self.tx_hash = tx_hash
            self._advance(TransferState.SUBMITTED)
            self.display.set_tx_hash(tx_hash)

            await ReceiptWaiter(negotiation.client, chain.name, chain.chain_id).wait(tx_hash)
            self._advance(TransferState.CONFIRMED)
        except FusionError as e:
            return self._finish(self._guard_aware(e, interceptor))
        except Exception as e:
            return self._finish(self._guard_aware(classify_error(e, chain.name, chain.chain_id), interceptor))

        await self._refresh_balance(request)
        symbol = self.settings.default_token_symbol or "tokens"
        self.display.set_status(
            "success",
            f"Transfer successful! {format_units(negotiation.amount, request.decimals)} {symbol} "
            f"sent to {shorten_address(request.recipient_address)}",
        )
        self.form.reset()
        return Success(tx_hash=self.tx_hash, explorer_url=self.settings.explorer_tx_url(self.tx_hash))

    def _guard_aware(self, error: FusionError, interceptor: ApprovalInterceptor | None) -> FusionError:
        # The relay may wrap the interceptor's exception; the flag is authoritative.
        if interceptor is not None and interceptor.tripped and not isinstance(error, GuardTripped):
            return GuardTripped(f"Approval transaction blocked | {error.message}")
        return error

    async def _refresh_balance(self, request: TransferRequest) -> None:
        try:
            await self.display.refresh_balance(request.token_address, self.wallet.address)
        except Exception as e:
            logger.warning("Balance refresh failed: %s", e)

    def _finish(self, error: FusionError) -> TransferOutcome:
        explorer_url = self.settings.explorer_tx_url(self.tx_hash) if self.tx_hash else None

        if error.kind in (ErrorKind.APPROVAL_REQUIRED, ErrorKind.GUARD_TRIPPED):
            if error.kind is ErrorKind.GUARD_TRIPPED:
                logger.warning("Protocol anomaly: approval reached the wallet after a clean quote inspection")
            self.state = TransferState.BLOCKED
            outcome: TransferOutcome = Blocked(reason=error.kind, message=error.message, explorer_url=explorer_url)
        elif isinstance(error, UserRejected):
            self.state = TransferState.REJECTED
            outcome = Rejected(reason=error.message, explorer_url=explorer_url)
        else:
            self.state = TransferState.FAILED
            message = error.message
            if error.kind in (ErrorKind.MISSING_RECEIPT_IDENTIFIER, ErrorKind.CONFIRMATION_TIMEOUT):
                message += " The transaction may still land; check the explorer."
            outcome = Failed(error_kind=error.kind, message=message, explorer_url=explorer_url)

        self.history.append(self.state)
        logger.info("Transfer ended in %s", self.state.name, extra={"context": {"kind": error.kind.value}})
        self.display.set_status("error", error.message)
        return outcome


def _extract_hash(result: Any) -> str:
    if isinstance(result, dict):
        value = result.get("hash") or result.get("transactionHash") or ""
    else:
        value = getattr(result, "hash", "") or ""
    return str(value) if value else ""


# Factory function for one-line usage
def transfer(
    amount: str,
    recipient: str,
    token_address: str | None = None,
    decimals: int | None = None,
    env_file: str | None = None,
    debug: bool = False,
) -> TransferOutcome:
    """
    One-line gasless transfer (reads PRIVATE_KEY from environment).

    Usage:
        from fusion_transfer import transfer

        outcome = transfer(amount="0.5", recipient="0x...")
        if outcome.ok:
            print(outcome.explorer_url)

    Args:
        amount: Amount to send (e.g. "0.5")
        recipient: Recipient address
        token_address: Token contract (default: DEFAULT_TOKEN_ADDRESS)
        decimals: Token decimals (default: DEFAULT_TOKEN_DECIMALS)
        env_file: Optional dotenv file
        debug: Show detailed logs

    Returns:
        TransferOutcome (Success, Rejected, Blocked or Failed)
    """
    settings = load_settings(env_file)

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        return Failed(ErrorKind.CONFIGURATION, "PRIVATE_KEY environment variable not set")

    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.chain.rpc_url))
    wallet = LocalWallet(private_key, w3=w3, chain_id=settings.chain.chain_id)
    client = FusionTransfer(wallet, settings=settings, reader=ChainReader(w3), debug=debug)

    request = TransferRequest(
        token_address=token_address or settings.default_token_address,
        recipient_address=recipient,
        amount=amount,
        decimals=decimals if decimals is not None else settings.default_token_decimals,
    )
    return asyncio.run(client.run(request))

"""Keeps approve transactions out of the gasless path"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from eth_utils import to_bytes

from .abi import APPROVE_SELECTOR
from .errors import ApprovalRequired, GuardBusy, GuardTripped
from .types import Quote, UserOperation
from .wallet import RequestChannel, Wallet

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class InspectionResult:
    offending: tuple[UserOperation, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.offending

    @property
    def approval_detected(self) -> bool:
        return bool(self.offending)


def is_approve_call(data: bytes | str | None) -> bool:
    if not data:
        return False
    if isinstance(data, str):
        try:
            data = to_bytes(hexstr=data)
        except ValueError:
            return False
    return bytes(data[:4]) == APPROVE_SELECTOR


def inspect_quote(quote: Quote) -> InspectionResult:
    """
    Check every operation of the quote for an approve selector.

    Returns:
        InspectionResult listing offending operations (empty when clean)
    """
    return InspectionResult(offending=tuple(op for op in quote.operations if is_approve_call(op.call_data)))


def ensure_no_approval(quote: Quote, native_symbol: str = "MATIC") -> None:
    """Raise ApprovalRequired if the quote would make the user pay gas for approve."""
    result = inspect_quote(quote)
    if result.approval_detected:
        raise ApprovalRequired(
            "Token requires an approval transaction. It may not fully support ERC-2612 permit, "
            f"or the relay chose an on-chain approval. You'll need a small amount of {native_symbol} "
            "to pay gas for the approval.",
            {"operations": len(result.offending)},
        )


class ApprovalInterceptor:
    """Wraps a wallet request channel and rejects approve transactions to one token."""

    def __init__(self, inner: RequestChannel, token_address: str):
        self.inner = inner
        self.token_address = token_address.lower()
        self.tripped = False

    def blocks(self, args: dict) -> bool:
        if not isinstance(args, dict) or args.get("method") != "eth_sendTransaction":
            return False
        params = args.get("params") or []
        tx = params[0] if params and isinstance(params[0], dict) else {}
        return str(tx.get("to") or "").lower() == self.token_address and is_approve_call(tx.get("data"))

    async def __call__(self, args: dict) -> Any:
        if self.blocks(args):
            self.tripped = True
            data = str(args["params"][0].get("data", ""))
            logger.error(
                "Blocked approval transaction during gasless execution; permit signature expected",
                extra={"context": {"token": self.token_address, "data": data[:74]}},
            )
            raise GuardTripped(
                "Blocked an approval transaction: the relay fell back to an on-chain approve instead of "
                "a permit signature. The approval was not sent, so no gas was spent."
            )
        return await self.inner(args)


class ApprovalGuard:
    """
    Owns ``wallet.request`` for the duration of a ``with`` block.

    The original channel object is put back on every exit path. Only one
    guard may hold a wallet at a time.
    """

    def __init__(self, wallet: Wallet, token_address: str):
        self.wallet = wallet
        self.token_address = token_address
        self.original: RequestChannel | None = None
        self.interceptor: ApprovalInterceptor | None = None

    def __enter__(self) -> ApprovalInterceptor:
        if isinstance(self.wallet.request, ApprovalInterceptor):
            raise GuardBusy("An approval guard is already active on this wallet")
        self.original = self.wallet.request
        self.interceptor = ApprovalInterceptor(self.original, self.token_address)
        self.wallet.request = self.interceptor
        return self.interceptor

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wallet.request = self.original
        self.original = None

    async def __aenter__(self) -> ApprovalInterceptor:
        return self.__enter__()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.__exit__(exc_type, exc, tb)


async def guarded_execute(wallet: Wallet, token_address: str, execute_fn: Callable[[], Awaitable[T]]) -> T:
    async with ApprovalGuard(wallet, token_address):
        return await execute_fn()

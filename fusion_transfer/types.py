from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from eth_utils import to_bytes

from .errors import ErrorKind

StatusKind = Literal["idle", "loading", "success", "error"]


class TransferState(Enum):
    IDLE = 0
    VALIDATING_INPUT = 1
    PROBING_CAPABILITY = 2
    NEGOTIATING_ACCOUNT = 3
    INITIALIZING_CLIENT = 4
    BUILDING_INSTRUCTION = 5
    REQUESTING_QUOTE = 6
    INSPECTING_APPROVALS = 7
    AWAITING_SIGNATURE = 8
    SUBMITTED = 9
    CONFIRMED = 10
    FAILED = 100
    BLOCKED = 101
    REJECTED = 102

    @property
    def terminal(self) -> bool:
        return self in (TransferState.CONFIRMED, TransferState.FAILED, TransferState.BLOCKED, TransferState.REJECTED)


@dataclass(frozen=True)
class TransferRequest:
    token_address: str
    recipient_address: str
    amount: str
    decimals: int = 18

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.recipient_address.strip():
            missing.append("recipient")
        if not self.token_address.strip():
            missing.append("token address")
        if not self.amount.strip():
            missing.append("amount")
        return missing


@dataclass
class TransferForm:
    """Input fields owned by the transfer flow."""
    token_address: str = ""
    decimals: int = 18
    recipient_address: str = ""
    amount: str = ""

    def to_request(self) -> TransferRequest:
        return TransferRequest(
            token_address=self.token_address,
            recipient_address=self.recipient_address,
            amount=self.amount,
            decimals=self.decimals,
        )

    def reset(self) -> None:
        self.recipient_address = ""
        self.amount = ""


class PermitMethod(Enum):
    DOMAIN_SEPARATOR = "domain_separator"
    NONCE_PROBE = "nonce_probe"
    ASSUMED_BY_SDK = "assumed_by_sdk"


@dataclass(frozen=True)
class PermitCapability:
    supported: bool
    method: PermitMethod

    @property
    def assumed(self) -> bool:
        return self.method is PermitMethod.ASSUMED_BY_SDK


@dataclass(frozen=True)
class UserOperation:
    call_data: bytes
    target_contract: str = ""

    @property
    def selector(self) -> bytes:
        return self.call_data[:4]


@dataclass(frozen=True)
class Quote:
    sponsorship_requested: bool
    operations: tuple[UserOperation, ...]
    raw: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: dict, sponsorship: bool = True) -> "Quote":
        """Read user operations from a relay quote payload, in order."""
        operations = []
        for entry in (payload.get("quote") or {}).get("userOps") or []:
            user_op = entry.get("userOp") or {}
            call_data = user_op.get("callData") or "0x"
            operations.append(UserOperation(
                call_data=to_bytes(hexstr=call_data) if isinstance(call_data, str) else bytes(call_data),
                target_contract=user_op.get("sender", ""),
            ))
        return cls(sponsorship_requested=sponsorship, operations=tuple(operations), raw=payload)


@dataclass(frozen=True)
class TokenInfo:
    name: str
    symbol: str
    balance: int
    decimals: int


@dataclass(frozen=True)
class TransferOutcome:
    explorer_url: str | None = field(default=None, kw_only=True)

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class Success(TransferOutcome):
    tx_hash: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected(TransferOutcome):
    reason: str


@dataclass(frozen=True)
class Blocked(TransferOutcome):
    reason: ErrorKind
    message: str = ""


@dataclass(frozen=True)
class Failed(TransferOutcome):
    error_kind: ErrorKind
    message: str


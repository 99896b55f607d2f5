"""Typed errors for Fusion transfers"""

from enum import Enum

import requests


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    CONFIGURATION = "ConfigurationError"
    APPROVAL_REQUIRED = "ApprovalRequired"
    GUARD_TRIPPED = "GuardTripped"
    USER_REJECTED = "UserRejected"
    NETWORK = "NetworkError"
    SERVICE = "ServiceError"
    MISSING_RECEIPT_IDENTIFIER = "MissingReceiptIdentifier"
    CONFIRMATION_TIMEOUT = "ConfirmationTimeout"
    BUSY = "Busy"


class FusionError(Exception):
    """Base exception for the transfer flow."""

    kind = ErrorKind.SERVICE

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return f"[{self.kind.value}] {self.message}"


class ValidationError(FusionError):
    """Missing or malformed user input."""
    kind = ErrorKind.VALIDATION


class ConfigurationError(FusionError):
    """Sponsor credentials are missing."""
    kind = ErrorKind.CONFIGURATION


class ApprovalRequired(FusionError):
    """The quote contains an on-chain approve call."""
    kind = ErrorKind.APPROVAL_REQUIRED


class GuardTripped(FusionError):
    """An approve transaction reached the wallet during execution."""
    kind = ErrorKind.GUARD_TRIPPED


class GuardBusy(FusionError):
    """Another approval guard already owns the wallet request channel."""
    kind = ErrorKind.BUSY


class UserRejected(FusionError):
    kind = ErrorKind.USER_REJECTED


class NetworkError(FusionError):
    kind = ErrorKind.NETWORK


class ServiceError(FusionError):
    kind = ErrorKind.SERVICE


class MissingReceiptIdentifier(FusionError):
    kind = ErrorKind.MISSING_RECEIPT_IDENTIFIER


class ConfirmationTimeout(FusionError):
    kind = ErrorKind.CONFIRMATION_TIMEOUT


class Busy(FusionError):
    kind = ErrorKind.BUSY


USER_REJECTED_CODE = 4001

_NETWORK_MARKERS = ("Failed to fetch", "ERR_NAME_NOT_RESOLVED", "Name or service not known")
_RPC_MARKERS = ("Internal JSON-RPC error", "RPC Error")


def describe_service_failure(message: str, chain_name: str, chain_id: int) -> str:
    """
    Enrich a relay denial with the precondition that most likely failed.

    Args:
        message: Raw error text from the relay
        chain_name: Human readable chain name (e.g. "Polygon")
        chain_id: Numeric chain id

    Returns:
        Message with remediation hints appended, or the original message
        when no known precondition matches.
    """
    lowered = message.lower()

    if "not supported by the mee node" in lowered:
        return (
            f"Chain support error. {chain_name} (Chain ID: {chain_id}) is not enabled for this project. "
            f"Check the relay project settings for {chain_name}. | {message}"
        )

    if "api key" in lowered or "authentication" in lowered or "unauthorized" in lowered:
        return f"API key issue. Check the relay API key configuration. | {message}"

    if "sponsorship" in lowered or "gas tank" in lowered:
        return (
            "Sponsorship error. Ensure: 1. the gas tank is funded, "
            "2. sponsorship is enabled in the project settings, "
            f"3. the project is configured for {chain_name}. | {message}"
        )

    return message


def classify_error(exc: BaseException, chain_name: str = "", chain_id: int = 0) -> FusionError:
    """Map any exception raised during an attempt onto the error taxonomy."""
    if isinstance(exc, FusionError):
        if isinstance(exc, ServiceError):
            enriched = describe_service_failure(exc.message, chain_name, chain_id)
            if enriched != exc.message:
                return ServiceError(enriched, exc.details)
        return exc

    code = getattr(exc, "code", None)
    if code == USER_REJECTED_CODE:
        return UserRejected("Signature request was rejected in the wallet", {"code": code})

    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return NetworkError(
            f"Network error: unable to reach the relay service ({exc}). "
            "Check your connection and try again."
        )

    message = str(exc) or exc.__class__.__name__

    if any(marker in message for marker in _NETWORK_MARKERS):
        return NetworkError(
            f"Network error: unable to reach the relay service. Check your connection and try again. | {message}"
        )

    if any(marker in message for marker in _RPC_MARKERS):
        return NetworkError(
            f"RPC error. Ensure the wallet is connected to {chain_name} (Chain ID: {chain_id}) "
            f"and try again. | {message}"
        )

    return ServiceError(describe_service_failure(message, chain_name, chain_id))

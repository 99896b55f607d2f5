"""Fusion Transfer - gasless ERC-20 transfers with permit signatures and sponsored relaying"""

from .client import FusionTransfer, LoggingDisplay, transfer
from .config import Settings, load_settings
from .errors import ErrorKind, FusionError
from .types import Blocked, Failed, Rejected, Success, TransferOutcome, TransferRequest, TransferState
from .wallet import LocalWallet, detect_wallets

__version__ = "0.1.0"
__all__ = [
    "FusionTransfer", "LoggingDisplay", "transfer",
    "Settings", "load_settings",
    "ErrorKind", "FusionError",
    "Blocked", "Failed", "Rejected", "Success", "TransferOutcome", "TransferRequest", "TransferState",
    "LocalWallet", "detect_wallets",
]

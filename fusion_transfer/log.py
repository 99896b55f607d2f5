"""
Logging helpers.

Contextual fields go through extra={"context": {...}} only.
"""

import logging
import re
import sys
from contextlib import contextmanager
from typing import Any, Iterator

from .units import shorten_address

RPC_NOISE_MARKERS = ("-32603",)
RPC_NOISE_LOGGERS = ("web3", "web3.providers", "web3.manager", "web3.RequestManager")

# Addresses and 32-byte hashes; longer call data is left alone
HEX_IDENTIFIER = re.compile(r"0x(?:[0-9a-fA-F]{40}|[0-9a-fA-F]{64})")


def _render(value: Any) -> str:
    if isinstance(value, str) and HEX_IDENTIFIER.fullmatch(value):
        return shorten_address(value)
    return str(value)


class TransferFormatter(logging.Formatter):
    """
    One line per record: ``time | level | logger | message | key=value``.

    Addresses and transaction hashes in the context are shortened the same
    way the status messages show them.
    """

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += " | " + ", ".join(f"{key}={_render(value)}" for key, value in context.items())
        return line


def setup_logging(level: int = logging.INFO) -> None:
    """Attach a stdout handler to the package logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(TransferFormatter())

    logger = logging.getLogger("fusion_transfer")
    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False


class RPCNoiseFilter(logging.Filter):
    """Drops the internal JSON-RPC errors that failing permit probes produce."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(marker in message for marker in RPC_NOISE_MARKERS) and (
            "RPC Error" in message or "Internal JSON-RPC error" in message
        ):
            return False
        return True


@contextmanager
def suppress_rpc_noise(logger_names: tuple[str, ...] = RPC_NOISE_LOGGERS) -> Iterator[RPCNoiseFilter]:
    """Filter expected RPC probe errors on the given loggers for the block only."""
    noise_filter = RPCNoiseFilter()
    loggers = [logging.getLogger(name) for name in logger_names]
    for logger in loggers:
        logger.addFilter(noise_filter)
    try:
        yield noise_filter
    finally:
        for logger in loggers:
            logger.removeFilter(noise_filter)

import asyncio
import logging
from typing import Any, Protocol

from .errors import ConfirmationTimeout, FusionError, MissingReceiptIdentifier, classify_error

logger = logging.getLogger(__name__)


class ReceiptSource(Protocol):
    async def wait_for_receipt(self, tx_hash: str) -> Any: ...


class ReceiptWaiter:
    """
    Suspends until the relay reports the super-transaction as settled.

    No timeout is added on top of the relay client's own.
    """

    def __init__(self, source: ReceiptSource, chain_name: str = "", chain_id: int = 0):
        self.source = source
        self.chain_name = chain_name
        self.chain_id = chain_id

    async def wait(self, tx_hash: str) -> Any:
        if not tx_hash:
            raise MissingReceiptIdentifier("Transaction hash not received from relay")

        try:
            receipt = await self.source.wait_for_receipt(tx_hash)
        except FusionError:
            raise
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeout(f"Timed out waiting for {tx_hash} to settle") from e
        except Exception as e:
            raise classify_error(e, self.chain_name, self.chain_id) from e

        logger.info("Super-transaction confirmed", extra={"context": {"hash": tx_hash}})
        return receipt

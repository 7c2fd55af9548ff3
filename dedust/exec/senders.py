"""Message senders submitting signed external messages to TON."""

import structlog

from ..data.toncenter import TonCenterClient

logger = structlog.get_logger(__name__)


class TonCenterSender:
    """Sends bags of cells through toncenter's ``sendBocReturnHash``."""

    def __init__(self, client: TonCenterClient) -> None:
        self.client = client

    async def send_boc(self, boc: bytes) -> str:
        """Submit a signed external message.

        Args:
            boc: Serialized bag of cells

        Returns:
            Hash of the accepted external message
        """
        if not boc:
            raise ValueError("Cannot send an empty message")
        try:
            logger.info("Sending message", boc_length=len(boc))
            tx_hash = await self.client.send_boc_return_hash(boc)
            logger.info("Message sent successfully", tx_hash=tx_hash)
            return tx_hash
        except Exception as e:
            logger.error("Message send failed", error=str(e), error_type=type(e).__name__)
            raise

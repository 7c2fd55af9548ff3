"""Quote execution: sign a cached quote and submit it."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..core.address import Address
from ..core.errors import QuoteExpired
from ..core.interfaces import Sender, Signer
from ..core.schemas import ExecutionResult
from ..routing.quotes import QuoteCache, is_expired

logger = structlog.get_logger(__name__)


class QuoteExecutor:
    """Commits quotes to execution through an external signer and sender."""

    def __init__(
        self,
        quote_cache: QuoteCache,
        signer: Signer | None = None,
        sender: Sender | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize quote executor.

        Args:
            quote_cache: Cache holding quotes awaiting execution
            signer: Optional swap message signer
            sender: Optional message sender
            now_fn: Optional function returning the current UTC time (for testing)
        """
        self.quote_cache = quote_cache
        self.signer = signer
        self.sender = sender
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

        if signer is None or sender is None:
            logger.warning("Quote executor initialized without signer/sender - execution disabled")

    def _is_execution_enabled(self) -> bool:
        return self.signer is not None and self.sender is not None

    async def execute_quote(self, quote_id: str, wallet_address: Address) -> ExecutionResult:
        """Sign and submit a cached quote, then retire it.

        Args:
            quote_id: Identifier returned by the quote builder
            wallet_address: Wallet that signs the swap

        Returns:
            Execution result with the submitted message hash

        Raises:
            QuoteNotFound: If the quote is unknown, consumed or being executed
            QuoteExpired: If the quote expired, including while signing
            NotImplementedError: If no signer or sender is configured
        """
        if not self._is_execution_enabled():
            raise NotImplementedError(
                "Quote execution requires a signer and a sender to be configured"
            )

        quote = await self.quote_cache.claim(quote_id)
        try:
            boc = await self.signer.sign_swap(quote, wallet_address)
            if is_expired(quote, self._now_fn()):
                raise QuoteExpired(f"Quote {quote_id} expired before submission")

            try:
                tx_hash = await self.sender.send_boc(boc)
            except Exception as e:
                logger.error(
                    "Quote submission failed",
                    quote_id=quote_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
        except BaseException:
            self.quote_cache.release(quote_id)
            raise

        await self.quote_cache.mark_consumed(quote_id)

        logger.info(
            "Quote executed",
            quote_id=quote_id,
            tx_hash=tx_hash,
            wallet=str(wallet_address),
            amount_in=quote.amount_in,
            amount_out_min=quote.amount_out_min,
        )
        return ExecutionResult(
            quote_id=quote_id,
            tx_hash=tx_hash,
            wallet_address=str(wallet_address),
            amount_in=quote.amount_in,
            amount_out_min=quote.amount_out_min,
            submitted_at=self._now_fn(),
        )

"""toncenter-backed pool state and LP balance source."""

import asyncio
import base64
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..core.address import Address
from ..core.errors import ProviderError, TonCenterError
from ..core.types import Asset, PoolSnapshot, PoolVariant, canonical_pair
from ..pools.identity import derive_pool_address
from ..pricing.amm import BPS

logger = structlog.get_logger(__name__)

RETRYABLE_CODES = {
    -32603,  # Internal error
    429,  # Too many requests
    500,
    502,
    503,
    504,
}


def _is_retryable_error(exception) -> bool:
    """Check if an exception is retryable."""
    if isinstance(exception, httpx.TimeoutException):
        return True
    if isinstance(exception, httpx.NetworkError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_CODES
    if isinstance(exception, TonCenterError):
        return exception.rpc_code in RETRYABLE_CODES
    return False


class TokenBucket:
    """Request budget shared by every call made through one client.

    Refills continuously at ``refill_rate`` tokens per second up to
    ``capacity``. An ``asyncio.Lock`` serializes refills so concurrent
    gathers draw from the same budget.
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        self.capacity = capacity
        self.refill_rate = refill_rate
        self._now_fn = now_fn or time.monotonic
        self.tokens = float(capacity)
        self.last_refill = self._now_fn()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._now_fn()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    async def try_acquire(self) -> bool:
        """Take a token if one is available."""
        async with self._lock:
            self._refill()
            if self.tokens >= 1:
                self.tokens -= 1
                return True
            return False

    async def acquire(self) -> None:
        """Wait until a token is available and take it."""
        while True:
            async with self._lock:
                self._refill()
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                deficit = 1 - self.tokens
            delay = deficit / self.refill_rate if self.refill_rate > 0 else 0.1
            await asyncio.sleep(delay)


def parse_stack_entry(entry: Any) -> Any:
    """Decode a get-method stack entry; numbers become ints.

    toncenter v2 returns ``["num", "0x1a"]`` pairs; newer deployments return
    ``{"type": "num", "value": "0x1a"}``. Non-numeric entries are returned as-is.
    """
    if isinstance(entry, list | tuple) and len(entry) == 2:
        kind, value = entry
    elif isinstance(entry, dict):
        kind, value = entry.get("type"), entry.get("value")
    else:
        return entry

    if kind == "num" and isinstance(value, str):
        return int(value, 16)
    return entry


class TonCenterClient:
    """Minimal toncenter client: v2 JSON-RPC reads and v3 indexer lookups."""

    def __init__(
        self,
        rpc_url: str,
        index_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        requests_per_minute: int = 60,
    ) -> None:
        """Initialize TonCenterClient.

        Args:
            rpc_url: toncenter v2 JSON-RPC endpoint URL
            index_url: toncenter v3 base URL (needed for LP balance lookups)
            api_key: Optional toncenter API key
            client: Optional httpx client (will create one if not provided)
            timeout: Request timeout in seconds
            max_retries: Attempts per request for retryable failures
            requests_per_minute: Client-side rate limit
        """
        self.rpc_url = rpc_url
        self.index_url = index_url.rstrip("/") if index_url else None
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = TokenBucket(
            capacity=requests_per_minute, refill_rate=requests_per_minute / 60
        )
        self._request_id = 0
        logger.info("TonCenterClient initialized", rpc_url=rpc_url, timeout=timeout)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    def _get_request_id(self) -> int:
        """Get next request ID."""
        self._request_id += 1
        return self._request_id

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_retryable_error),
            reraise=True,
        )

    async def _wait_for_token(self) -> None:
        await self.rate_limiter.acquire()

    async def call(self, method: str, params: dict[str, Any]) -> Any:
        """Make a JSON-RPC request with rate limiting and retries.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPC response result

        Raises:
            TonCenterError: For RPC-specific errors
            httpx.HTTPError: For HTTP errors
        """
        async for attempt in self._retrying():
            with attempt:
                await self._wait_for_token()
                return await self._post_rpc(method, params)

    async def _post_rpc(self, method: str, params: dict[str, Any]) -> Any:
        request_id = self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            logger.debug("Making RPC request", method=method, request_id=request_id)
            response = await self.client.post(
                self.rpc_url, json=payload, headers=self._headers()
            )

            try:
                data = response.json()
            except ValueError:
                response.raise_for_status()
                raise TonCenterError(-1, "Malformed JSON-RPC response")

            error = data.get("error")
            if error is not None or data.get("ok") is False:
                if isinstance(error, dict):
                    raise TonCenterError(
                        code=error.get("code", -1),
                        message=error.get("message", "Unknown RPC error"),
                        data=error.get("data"),
                    )
                raise TonCenterError(
                    code=data.get("code", response.status_code),
                    message=str(error or "Unknown RPC error"),
                )
            response.raise_for_status()

            logger.debug(
                "RPC request completed",
                method=method,
                request_id=request_id,
                duration=time.time() - start_time,
            )
            return data.get("result")

        except (httpx.HTTPError, TonCenterError) as e:
            logger.error(
                "RPC request failed",
                method=method,
                request_id=request_id,
                duration=time.time() - start_time,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def get_address_state(self, address: Address) -> str:
        """Return ``active``, ``uninitialized`` or ``frozen``."""
        return await self.call("getAddressState", {"address": address.to_raw()})

    async def run_get_method(
        self, address: Address, method: str, stack: list | None = None
    ) -> list[Any]:
        """Run a get method and return its decoded stack.

        Raises:
            TonCenterError: If the method exits with a non-zero code or the
                reply is malformed
        """
        result = await self.call(
            "runGetMethod",
            {"address": address.to_raw(), "method": method, "stack": stack or []},
        )
        if not isinstance(result, dict) or not isinstance(result.get("stack", []), list):
            raise TonCenterError(-1, f"Malformed {method} response from {address.to_raw()}")
        exit_code = result.get("exit_code", 0)
        if exit_code != 0:
            raise TonCenterError(
                code=exit_code,
                message=f"Get method {method} failed on {address.to_raw()}",
            )
        try:
            return [parse_stack_entry(entry) for entry in result.get("stack", [])]
        except ValueError as e:
            raise TonCenterError(-1, f"Malformed {method} stack from {address.to_raw()}") from e

    async def send_boc_return_hash(self, boc: bytes) -> str:
        """Submit a serialized external message and return its hash."""
        result = await self.call(
            "sendBocReturnHash", {"boc": base64.b64encode(boc).decode("ascii")}
        )
        return result["hash"] if isinstance(result, dict) else str(result)

    async def get_jetton_wallet_balance(self, owner: Address, jetton_master: Address) -> int:
        """Balance of ``owner``'s wallet for ``jetton_master`` (0 if none exists).

        Raises:
            ValueError: If the client has no index URL configured
        """
        if self.index_url is None:
            raise ValueError("toncenter index URL is required for jetton balances")

        params = {
            "owner_address": owner.to_raw(),
            "jetton_address": jetton_master.to_raw(),
            "limit": 1,
        }
        headers = {"X-API-Key": self.api_key} if self.api_key else {}

        async for attempt in self._retrying():
            with attempt:
                await self._wait_for_token()
                try:
                    response = await self.client.get(
                        f"{self.index_url}/jetton/wallets", params=params, headers=headers
                    )
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    logger.warning(
                        "Jetton wallet lookup failed",
                        owner=owner.to_raw(),
                        error=str(e),
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise
                wallets = response.json().get("jetton_wallets", [])
                if not wallets:
                    return 0
                return int(wallets[0].get("balance", 0))


class TonCenterPoolProvider:
    """Pool snapshot and LP balance source reading DeDust pools via toncenter."""

    def __init__(self, client: TonCenterClient, factory_address: Address) -> None:
        self.client = client
        self.factory_address = factory_address

    async def get_pool_snapshot(
        self, asset_a: Asset, asset_b: Asset, variant: PoolVariant
    ) -> PoolSnapshot | None:
        """Read reserves, fee and LP supply of the pool for a pair.

        Returns:
            Snapshot in canonical asset order, or None if the pool is not deployed

        Raises:
            ProviderError: On network or RPC failures, or a malformed reply
        """
        asset_x, asset_y = canonical_pair(asset_a, asset_b)
        pool_address = derive_pool_address(self.factory_address, asset_x, asset_y, variant)

        try:
            state = await self.client.get_address_state(pool_address)
            if state != "active":
                logger.debug(
                    "Pool not deployed",
                    pool=pool_address.to_raw(),
                    variant=variant.value,
                    state=state,
                )
                return None

            reserves, trade_fee, jetton_data = await asyncio.gather(
                self.client.run_get_method(pool_address, "get_reserves"),
                self.client.run_get_method(pool_address, "get_trade_fee"),
                self.client.run_get_method(pool_address, "get_jetton_data"),
            )
        except httpx.HTTPError as e:
            logger.error(
                "Pool state fetch failed",
                pool=pool_address.to_raw(),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderError(f"Failed to read pool {pool_address}: {e}") from e

        try:
            fee_numerator, fee_denominator = trade_fee[0], trade_fee[1]
            fee_bps = fee_numerator * BPS // fee_denominator if fee_denominator else 0

            return PoolSnapshot(
                pool_address=pool_address,
                asset_x=asset_x,
                asset_y=asset_y,
                reserve_x=reserves[0],
                reserve_y=reserves[1],
                fee_bps=fee_bps,
                lp_total_supply=jetton_data[0],
                variant=variant,
                fetched_at=datetime.now(UTC),
            )
        except (IndexError, TypeError, ValueError) as e:
            # ValueError covers pydantic's ValidationError
            logger.error(
                "Malformed pool state",
                pool=pool_address.to_raw(),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderError(f"Malformed state for pool {pool_address}: {e}") from e

    async def get_lp_balance(self, pool_address: Address, owner: Address) -> int:
        """LP tokens held by ``owner`` (the pool is its own LP jetton master)."""
        try:
            return await self.client.get_jetton_wallet_balance(owner, pool_address)
        except httpx.HTTPError as e:
            logger.error(
                "LP balance fetch failed",
                pool=pool_address.to_raw(),
                owner=owner.to_raw(),
                error=str(e),
            )
            raise ProviderError(f"Failed to read LP balance: {e}") from e

"""Per-network DeDust connector facade."""

import asyncio
from decimal import Decimal
from pathlib import Path

import structlog

from ..config.settings import AppSettings, load_settings
from ..config.tokens import TokenInfo, TokenRegistry
from ..core.address import Address
from ..core.errors import InvalidAddress, InvalidAmount
from ..core.interfaces import LpBalanceSource, PoolSnapshotProvider, Sender, Signer
from ..core.schemas import (
    ExecuteQuoteRequest,
    ExecutionResult,
    PoolInfo,
    PoolInfoRequest,
    PositionInfoRequest,
    QuoteLiquidityRequest,
    QuoteSwapRequest,
)
from ..core.types import (
    LiquidityOperation,
    LiquidityPosition,
    LiquidityQuote,
    Quote,
    SwapSide,
)
from ..data.cache import PoolStateCache
from ..data.toncenter import TonCenterClient, TonCenterPoolProvider
from ..exec.executor import QuoteExecutor
from ..exec.senders import TonCenterSender
from ..liquidity.quoting import LiquidityQuoter
from ..routing.finder import RouteFinder
from ..routing.quotes import QuoteBuilder, QuoteCache, slippage_pct_to_bps

logger = structlog.get_logger(__name__)


def parse_wallet(value: str) -> Address:
    try:
        return Address.parse(value)
    except ValueError as e:
        raise InvalidAddress(f"Invalid wallet address: {value}") from e


class DedustConnector:
    """Swap and liquidity quoting for one TON network."""

    def __init__(
        self,
        settings: AppSettings,
        provider: PoolSnapshotProvider | None = None,
        lp_balances: LpBalanceSource | None = None,
        signer: Signer | None = None,
        sender: Sender | None = None,
    ) -> None:
        """Initialize connector with assembled components.

        Without an explicit provider, pool state, LP balances and message
        submission all go through toncenter.

        Args:
            settings: Network settings
            provider: Optional pool snapshot provider
            lp_balances: Optional LP balance source
            signer: Optional swap signer (execution is disabled without one)
            sender: Optional message sender
        """
        self.settings = settings
        self.network = settings.network
        self.tokens = TokenRegistry(settings.tokens)
        self.factory_address = Address.parse(settings.factory_address)
        self._client: TonCenterClient | None = None

        if provider is None:
            self._client = TonCenterClient(
                rpc_url=settings.toncenter_rpc_url,
                index_url=settings.toncenter_index_url,
                api_key=settings.toncenter_api_key,
                timeout=settings.request_timeout,
                max_retries=settings.max_retries,
                requests_per_minute=settings.requests_per_minute,
            )
            provider = TonCenterPoolProvider(self._client, self.factory_address)
            lp_balances = lp_balances or provider
            sender = sender or TonCenterSender(self._client)

        self.pool_cache = PoolStateCache(
            provider,
            ttl_seconds=settings.pool_cache_ttl_seconds,
            sweep_interval_seconds=settings.pool_cache_sweep_interval_seconds,
        )
        self.finder = RouteFinder(
            self.pool_cache,
            bridge_assets=[self.tokens.asset(token) for token in settings.bridge_tokens],
            max_hops=settings.max_hops,
            fetch_timeout=settings.pool_fetch_timeout,
            search_multi_hop_with_direct=settings.search_multi_hop_with_direct,
        )
        self.quote_cache = QuoteCache(
            sweep_interval_seconds=settings.quote_sweep_interval_seconds
        )
        self.quote_builder = QuoteBuilder(
            self.finder,
            self.quote_cache,
            quote_ttl_seconds=settings.quote_ttl_seconds,
            gas_estimate_per_hop=settings.gas_estimate_per_hop,
        )
        self.liquidity = LiquidityQuoter(
            self.pool_cache, lp_balances, fetch_timeout=settings.pool_fetch_timeout
        )
        self.executor = QuoteExecutor(self.quote_cache, signer=signer, sender=sender)

        logger.info(
            "DeDust connector initialized",
            network=self.network,
            factory=str(self.factory_address),
            tokens=len(self.tokens),
            max_hops=settings.max_hops,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def start(self) -> None:
        """Start background cache sweeps."""
        self.pool_cache.start()
        self.quote_cache.start()

    async def close(self) -> None:
        await self.pool_cache.stop()
        await self.quote_cache.stop()
        if self._client is not None:
            await self._client.close()
        logger.info("DeDust connector closed", network=self.network)

    async def quote_swap(self, request: QuoteSwapRequest) -> Quote:
        """Quote selling or buying ``request.amount`` of the base token.

        SELL swaps base into quote for an exact base input. BUY swaps quote
        into base for an exact base output.

        Raises:
            InvalidAsset: If a token cannot be resolved
            InvalidAmount: If the amount is not positive
            InvalidSlippage: If slippage is outside [0, 50] percent
            NoRouteFound: If no route exists
            RoutingUnavailable: If pool state could not be read
        """
        base = self.tokens.resolve(request.base)
        quote = self.tokens.resolve(request.quote)
        slippage_pct = (
            request.slippage_pct
            if request.slippage_pct is not None
            else Decimal(str(self.settings.default_slippage_pct))
        )
        slippage_bps = slippage_pct_to_bps(slippage_pct)
        amount = self.tokens.to_units(request.amount, base)

        if request.side is SwapSide.SELL:
            source, dest = base.asset(), quote.asset()
        else:
            source, dest = quote.asset(), base.asset()

        return await self.quote_builder.build_quote(
            source,
            dest,
            amount,
            side=request.side,
            slippage_bps=slippage_bps,
            max_hops=request.max_hops,
        )

    async def execute_quote(self, request: ExecuteQuoteRequest) -> ExecutionResult:
        wallet = parse_wallet(request.wallet_address)
        return await self.executor.execute_quote(request.quote_id, wallet)

    async def quote_liquidity(self, request: QuoteLiquidityRequest) -> LiquidityQuote:
        """Quote adding or removing liquidity.

        Raises:
            InvalidAmount: If the amounts required by the operation are missing
            PoolNotFound: If no pool is deployed for the pair
            InsufficientLiquidity: If more LP is burned than exists
            SlippageExceeded: If a caller floor is not met
        """
        base = self.tokens.resolve(request.base)
        quote = self.tokens.resolve(request.quote)

        if request.operation is LiquidityOperation.ADD:
            if request.base_amount is None or request.quote_amount is None:
                raise InvalidAmount("Adding liquidity requires base_amount and quote_amount")
            return await self.liquidity.quote_add(
                base.asset(),
                quote.asset(),
                self.tokens.to_units(request.base_amount, base),
                self.tokens.to_units(request.quote_amount, quote),
                variant=request.pool_type,
                min_lp_tokens=request.min_lp_tokens,
            )

        owner = parse_wallet(request.wallet_address) if request.wallet_address else None
        return await self.liquidity.quote_remove(
            base.asset(),
            quote.asset(),
            variant=request.pool_type,
            lp_amount=request.lp_token_amount,
            percentage=request.percentage,
            owner=owner,
            min_base_amount=request.min_base_amount,
            min_quote_amount=request.min_quote_amount,
        )

    async def get_pool_info(self, request: PoolInfoRequest) -> PoolInfo:
        """Raises PoolNotFound if no pool is deployed for the pair."""
        base = self.tokens.resolve(request.base)
        quote = self.tokens.resolve(request.quote)
        pool = await self.liquidity.get_pool(base.asset(), quote.asset(), request.pool_type)

        reserve_base, reserve_quote = pool.reserves_for(base.asset())
        base_reserve = self.tokens.from_units(reserve_base, base)
        quote_reserve = self.tokens.from_units(reserve_quote, quote)
        price = quote_reserve / base_reserve if base_reserve > 0 else Decimal(0)

        return PoolInfo(
            address=str(pool.pool_address),
            base_symbol=base.symbol,
            quote_symbol=quote.symbol,
            base_reserve=base_reserve,
            quote_reserve=quote_reserve,
            price=price,
            fee_pct=Decimal(pool.fee_bps) / 100,
            lp_total_supply=pool.lp_total_supply,
            pool_type=pool.variant,
            fetched_at=pool.fetched_at,
        )

    async def get_position_info(self, request: PositionInfoRequest) -> LiquidityPosition:
        """Raises PositionNotFound if the wallet holds no LP tokens."""
        owner = parse_wallet(request.wallet_address)
        base = self.tokens.resolve(request.base)
        quote = self.tokens.resolve(request.quote)
        return await self.liquidity.get_position(
            owner, base.asset(), quote.asset(), request.pool_type
        )

    def token(self, identifier: str) -> TokenInfo:
        return self.tokens.resolve(identifier)


class ConnectorRegistry:
    """Explicit map of network name to connector, built on first use."""

    def __init__(self, config_dir: str = "configs") -> None:
        self.config_dir = Path(config_dir)
        self._connectors: dict[str, DedustConnector] = {}
        self._lock = asyncio.Lock()

    def register(self, connector: DedustConnector) -> None:
        self._connectors[connector.network] = connector

    async def get(self, network: str) -> DedustConnector:
        """Return the connector for ``network``, loading its settings if needed.

        Raises:
            ValueError: If the network is not supported
            FileNotFoundError: If the network's configuration file is missing
        """
        async with self._lock:
            connector = self._connectors.get(network)
            if connector is None:
                settings = load_settings(network, str(self.config_dir / f"{network}.yaml"))
                connector = DedustConnector(settings)
                connector.start()
                self._connectors[network] = connector
            return connector

    async def close_all(self) -> None:
        async with self._lock:
            for connector in self._connectors.values():
                await connector.close()
            self._connectors.clear()

    def __contains__(self, network: str) -> bool:
        return network in self._connectors

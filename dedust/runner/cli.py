"""Command line entry point for one-off pool reads and quotes."""

import argparse
import asyncio
import sys
from decimal import Decimal

import structlog

from ..config.settings import load_settings
from ..core.errors import DedustError
from ..core.schemas import PoolInfoRequest, QuoteLiquidityRequest, QuoteSwapRequest
from ..core.types import LiquidityOperation, PoolVariant, SwapSide
from .connector import DedustConnector

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DeDust connector")
    parser.add_argument(
        "--network",
        default="mainnet",
        choices=["mainnet", "testnet"],
        help="TON network",
    )
    parser.add_argument(
        "--config", default=None, help="Configuration file path (default: configs/<network>.yaml)"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    pool_info = commands.add_parser("pool-info", help="Show pool reserves and price")
    pool_info.add_argument("base", help="Base token symbol or address")
    pool_info.add_argument("quote", help="Quote token symbol or address")
    pool_info.add_argument(
        "--pool-type", default="volatile", choices=[v.value for v in PoolVariant]
    )

    quote_swap = commands.add_parser("quote-swap", help="Quote a swap")
    quote_swap.add_argument("base", help="Base token symbol or address")
    quote_swap.add_argument("quote", help="Quote token symbol or address")
    quote_swap.add_argument("amount", type=Decimal, help="Amount of base token")
    quote_swap.add_argument("--side", default="SELL", choices=[s.value for s in SwapSide])
    quote_swap.add_argument("--slippage", type=Decimal, default=None, help="Slippage in percent")
    quote_swap.add_argument("--max-hops", type=int, default=None)

    quote_liquidity = commands.add_parser("quote-liquidity", help="Quote a liquidity change")
    quote_liquidity.add_argument("base", help="Base token symbol or address")
    quote_liquidity.add_argument("quote", help="Quote token symbol or address")
    quote_liquidity.add_argument(
        "operation", choices=[op.value for op in LiquidityOperation]
    )
    quote_liquidity.add_argument("--base-amount", type=Decimal, default=None)
    quote_liquidity.add_argument("--quote-amount", type=Decimal, default=None)
    quote_liquidity.add_argument("--lp-amount", type=int, default=None)
    quote_liquidity.add_argument("--percentage", type=Decimal, default=None)
    quote_liquidity.add_argument("--wallet", default=None, help="Position owner")
    quote_liquidity.add_argument(
        "--pool-type", default="volatile", choices=[v.value for v in PoolVariant]
    )

    return parser


async def run(args: argparse.Namespace) -> str:
    """Execute one command and return its JSON output."""
    config_path = args.config or f"configs/{args.network}.yaml"
    settings = load_settings(args.network, config_path)

    async with DedustConnector(settings) as connector:
        if args.command == "pool-info":
            result = await connector.get_pool_info(
                PoolInfoRequest(base=args.base, quote=args.quote, pool_type=args.pool_type)
            )
        elif args.command == "quote-swap":
            result = await connector.quote_swap(
                QuoteSwapRequest(
                    base=args.base,
                    quote=args.quote,
                    amount=args.amount,
                    side=args.side,
                    slippage_pct=args.slippage,
                    max_hops=args.max_hops,
                )
            )
        else:
            result = await connector.quote_liquidity(
                QuoteLiquidityRequest(
                    base=args.base,
                    quote=args.quote,
                    operation=args.operation,
                    pool_type=args.pool_type,
                    base_amount=args.base_amount,
                    quote_amount=args.quote_amount,
                    lp_token_amount=args.lp_amount,
                    percentage=args.percentage,
                    wallet_address=args.wallet,
                )
            )

    return result.model_dump_json(indent=2)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the connector CLI."""
    args = build_parser().parse_args(argv)

    try:
        output = asyncio.run(run(args))
    except DedustError as e:
        logger.error("Request failed", code=e.code, error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)

    print(output)


if __name__ == "__main__":
    main()

"""coinfolio CLI entrypoint.

Subcommands: list, add, update, sell, unsell, delete, summary, sold, watch.

Configuration comes from an optional TOML file (--config), COINFOLIO_* environment
variables and repeated --set KEY=VALUE overrides. With the local backend and no
configured path, the collection is kept under ./.coinfolio.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Optional, Sequence

from coinfolio.config.config_loader import ConfigLoader
from coinfolio.config.configs import AppConfig
from coinfolio.core.aggregator import compute_snapshot, sold_transactions
from coinfolio.core.collection import active_coins, filter_coins, sold_coins, sort_coins
from coinfolio.core.factory import build_store
from coinfolio.core.formatting import format_currency, format_roi
from coinfolio.core.store import BaseCoinStore
from coinfolio.core.tracker import PortfolioTracker
from coinfolio.errors.errors import CoinfolioError, ConfigurationError, NotFound
from coinfolio.types.types import (
    Coin,
    CoinDraft,
    PortfolioSnapshot,
    SortDirection,
    SortField,
    derive_roi,
)

APP_VERSION = "0.1.0"
DEFAULT_DATA_DIR = Path(".coinfolio")

EXIT_OK = 0
EXIT_FAULT = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="coinfolio", description="Rare coin portfolio tracker")
    p.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    p.add_argument("--config", type=Path, required=False, help="Path to a TOML config file")
    p.add_argument(
        "--set",
        dest="config_overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config entry (may be repeated)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="List coins")
    status = ls.add_mutually_exclusive_group()
    status.add_argument("--active", action="store_true", help="Only coins still held")
    status.add_argument("--sold", action="store_true", help="Only sold coins")
    ls.add_argument("--search", help="Case-insensitive name filter")
    ls.add_argument(
        "--sort", choices=[f.value for f in SortField], default=SortField.NAME.value
    )
    ls.add_argument("--desc", action="store_true", help="Sort descending")

    add = sub.add_parser("add", help="Record a new coin")
    add.add_argument("--name", required=True)
    add.add_argument("--price", type=float, required=True, help="Purchase price")
    add.add_argument("--value", type=float, required=True, help="Current market value")
    add.add_argument("--acquired", type=date.fromisoformat, help="Acquisition date (YYYY-MM-DD)")
    _add_descriptive(add)

    upd = sub.add_parser("update", help="Change a stored coin")
    upd.add_argument("coin_id")
    upd.add_argument("--name")
    upd.add_argument("--price", type=float, help="Purchase price")
    upd.add_argument("--value", type=float, help="Current market value")
    upd.add_argument("--roi", type=float, help="Explicit ROI percent (derived when omitted)")
    upd.add_argument("--acquired", type=date.fromisoformat)
    _add_descriptive(upd)

    sell = sub.add_parser("sell", help="Mark a coin as sold")
    sell.add_argument("coin_id")
    sell.add_argument("--price", type=float, required=True, help="Sold price")
    sell.add_argument("--date", type=date.fromisoformat, help="Sold date (default: today)")

    unsell = sub.add_parser("unsell", help="Revert a sale")
    unsell.add_argument("coin_id")

    rm = sub.add_parser("delete", help="Delete a coin")
    rm.add_argument("coin_id")

    summary = sub.add_parser("summary", help="Portfolio metrics")
    summary.add_argument("--cash", type=float, help="Cash reserve (default from config)")

    sub.add_parser("sold", help="Realized sales, newest first")

    watch = sub.add_parser("watch", help="Print the summary whenever the collection changes")
    watch.add_argument("--cash", type=float, help="Cash reserve (default from config)")
    watch.add_argument("--seconds", type=float, default=None, help="Stop after N seconds")
    return p


def _add_descriptive(sp: argparse.ArgumentParser) -> None:
    """Arguments shared by add and update."""
    sp.add_argument("--image")
    sp.add_argument("--description")
    sp.add_argument("--grade")
    sp.add_argument("--mint")
    sp.add_argument("--year", type=int)


# --- Rendering ---


def render_coin(coin: Coin) -> str:
    status = (
        f"sold {format_currency(coin.sold_price or 0.0)} on {coin.sold_date}"
        if coin.is_sold
        else "held"
    )
    return (
        f"{coin.id}  {coin.name:<28} paid {format_currency(coin.purchase_price):>12}  "
        f"value {format_currency(coin.current_value):>12}  roi {format_roi(coin.roi):>9}  {status}"
    )


def render_snapshot(snapshot: PortfolioSnapshot) -> str:
    rows = [
        ("Total portfolio value", format_currency(snapshot.total_value)),
        ("Cash reserves", format_currency(snapshot.cash_reserve)),
        (f"Held coins ({snapshot.active_count})", format_currency(snapshot.active_value)),
        (f"Sold coins profit ({snapshot.sold_count})", format_currency(snapshot.sold_profit)),
        ("Active ROI", format_roi(snapshot.active_roi)),
        ("Sold ROI", format_roi(snapshot.sold_roi)),
        ("Total ROI", format_roi(snapshot.total_roi)),
    ]
    width = max(len(label) for label, _ in rows)
    return "\n".join(f"{label:<{width}}  {value}" for label, value in rows)


# --- Commands ---


async def _cmd_list(store: BaseCoinStore, args: argparse.Namespace) -> int:
    coins = await store.list_all()
    if args.active:
        coins = active_coins(coins)
    elif args.sold:
        coins = sold_coins(coins)
    coins = filter_coins(coins, args.search)
    direction = SortDirection.DESC if args.desc else SortDirection.ASC
    coins = sort_coins(coins, SortField(args.sort), direction)
    if not coins:
        print("No coins found.")
    for coin in coins:
        print(render_coin(coin))
    return EXIT_OK


def _descriptive_fields(args: argparse.Namespace) -> dict[str, Any]:
    names = ("image", "description", "grade", "mint", "year")
    return {name: getattr(args, name) for name in names if getattr(args, name) is not None}


async def _cmd_add(store: BaseCoinStore, args: argparse.Namespace) -> int:
    fields: dict[str, Any] = {
        "name": args.name,
        "purchase_price": args.price,
        "current_value": args.value,
        **_descriptive_fields(args),
    }
    if args.acquired is not None:
        fields["acquisition_date"] = args.acquired
    coin = await store.add(CoinDraft(**fields))
    print(f"Added {coin.id}")
    print(render_coin(coin))
    return EXIT_OK


async def _cmd_update(store: BaseCoinStore, args: argparse.Namespace) -> int:
    coin = await store.get(args.coin_id)
    if coin is None:
        raise NotFound(args.coin_id, component="cli")
    changes: dict[str, Any] = _descriptive_fields(args)
    if args.name is not None:
        changes["name"] = args.name
    if args.price is not None:
        changes["purchase_price"] = args.price
    if args.value is not None:
        changes["current_value"] = args.value
    if args.acquired is not None:
        changes["acquisition_date"] = args.acquired
    if args.roi is not None:
        changes["roi"] = args.roi
    elif "purchase_price" in changes or "current_value" in changes:
        changes["roi"] = derive_roi(
            changes.get("purchase_price", coin.purchase_price),
            changes.get("current_value", coin.current_value),
        )
    updated = await store.update(coin.model_copy(update=changes).revalidated())
    print(render_coin(updated))
    return EXIT_OK


async def _cmd_sell(store: BaseCoinStore, args: argparse.Namespace) -> int:
    coin = await store.mark_sold(args.coin_id, args.price, args.date)
    print(f"Coin marked as sold for {format_currency(coin.sold_price or 0.0)}")
    return EXIT_OK


async def _cmd_unsell(store: BaseCoinStore, args: argparse.Namespace) -> int:
    coin = await store.mark_unsold(args.coin_id)
    print(render_coin(coin))
    return EXIT_OK


async def _cmd_delete(store: BaseCoinStore, args: argparse.Namespace) -> int:
    await store.delete(args.coin_id)
    print(f"Deleted {args.coin_id}")
    return EXIT_OK


async def _cmd_summary(
    store: BaseCoinStore, args: argparse.Namespace, config: AppConfig
) -> int:
    cash = config.cash_reserve if args.cash is None else args.cash
    if cash < 0:
        raise ConfigurationError("Cash reserve must be non-negative", field="cash", value=cash)
    print(render_snapshot(compute_snapshot(await store.list_all(), cash)))
    return EXIT_OK


async def _cmd_sold(store: BaseCoinStore) -> int:
    transactions = sold_transactions(await store.list_all())
    if not transactions:
        print("No sold coins.")
    for tx in transactions:
        print(
            f"{tx.sold_date}  {tx.coin_name:<28} bought {format_currency(tx.purchase_price):>12}  "
            f"sold {format_currency(tx.sold_price):>12}  profit {format_currency(tx.profit):>12} "
            f"({format_roi(tx.profit_percentage)})"
        )
    return EXIT_OK


async def _cmd_watch(
    store: BaseCoinStore, args: argparse.Namespace, config: AppConfig
) -> int:
    cash = config.cash_reserve if args.cash is None else args.cash

    def show(snapshot: PortfolioSnapshot, coins: tuple[Coin, ...]) -> None:
        print(render_snapshot(snapshot))
        print("-" * 40, flush=True)

    tracker = PortfolioTracker(store, cash_reserve=cash)
    tracker.on_update(show)
    async with tracker:
        try:
            if args.seconds is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(args.seconds)
        except asyncio.CancelledError:
            pass
    return EXIT_OK


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    """Build the configured store, execute one command and always release the store."""
    store = build_store(config)
    async with store:
        if args.command == "list":
            return await _cmd_list(store, args)
        if args.command == "add":
            return await _cmd_add(store, args)
        if args.command == "update":
            return await _cmd_update(store, args)
        if args.command == "sell":
            return await _cmd_sell(store, args)
        if args.command == "unsell":
            return await _cmd_unsell(store, args)
        if args.command == "delete":
            return await _cmd_delete(store, args)
        if args.command == "summary":
            return await _cmd_summary(store, args, config)
        if args.command == "sold":
            return await _cmd_sold(store)
        if args.command == "watch":
            return await _cmd_watch(store, args, config)
    print(f"Unknown command '{args.command}'", file=sys.stderr)
    return EXIT_USAGE


def load_config(args: argparse.Namespace, loader: Optional[ConfigLoader] = None) -> AppConfig:
    config = (loader or ConfigLoader()).load(args.config, args.config_overrides)
    if config.backend == "local" and config.local.path is None:
        local = config.local.model_copy(update={"path": DEFAULT_DATA_DIR})
        config = config.model_copy(update={"local": local})
    return config


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    configure_logging(config.log_level)

    try:
        return asyncio.run(run(args, config))
    except ConfigurationError as exc:
        print(f"invalid input: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except CoinfolioError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAULT
    except ValueError as exc:
        # pydantic validation of user supplied fields
        print(f"invalid input: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""K 线策略命令行入口。

子命令：

- `runner`：连接行情，预热窗口，按收盘 K 线运行检测器并下单（默认 dry-run）。
- `check-config`：只加载并校验配置，打印检测器列表。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from broker.base import OrderTransport, TradingContext
from broker.ccxt_transport import CcxtOrderTransport, build_exchange, fetch_free_balances
from broker.mock import DryRunTransport
from market.client import KLineSource, get_kline_source
from market.metadata import CcxtMarketProvider, MarketProvider, StaticMarketProvider
from market.models import Market
from shared.config.config_loader import load_config
from shared.config.schema import AppConfig
from shared.utils.logging import set_log_level, setup_logger
from shared.utils.notifier import build_notifier
from strategy.kline_strategy import KLineStrategy


@dataclass
class CliArgs:
    """命令行参数。

    config: 配置文件路径
    task: runner / check-config
    max_events: 仅用于 debug，处理多少根收盘 K 线后退出
    """
    config: str
    task: str
    max_events: int | None = None


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="klinebot", description="K 线形态检测与下单")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument("--config", default=default, help="配置文件路径 (默认: config/config.yml)")

    # 允许 `main.py --config ... runner` 与 `main.py runner --config ...` 两种写法
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_runner = sub.add_parser("runner", help="实盘/干跑主循环")
    _add_config_arg(p_runner, default=argparse.SUPPRESS)
    p_runner.add_argument(
        "--max-events",
        type=int,
        default=None,
        help="处理多少根收盘 K 线后退出（用于 dry-run/测试）",
    )

    p_check = sub.add_parser("check-config", help="校验配置并打印检测器")
    _add_config_arg(p_check, default=argparse.SUPPRESS)
    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    ns = build_parser().parse_args(argv)
    return CliArgs(
        config=str(ns.config),
        task=ns.task or "runner",
        max_events=getattr(ns, "max_events", None),
    )


def build_market_provider(cfg: AppConfig, exchange: Any) -> MarketProvider:
    market_cfg = cfg.strategy.market
    if market_cfg is None:
        return CcxtMarketProvider(exchange)
    market = Market(symbol=cfg.strategy.symbol, **market_cfg.model_dump())
    return StaticMarketProvider({market.symbol: market})


def build_strategy(cfg: AppConfig, exchange: Any) -> KLineStrategy:
    """按配置组装策略：交易对规则、余额、下单通道、通知出口。"""
    provider = build_market_provider(cfg, exchange)
    market = provider.query_market(cfg.strategy.symbol)

    transport: OrderTransport
    if cfg.exchange.dry_run:
        ctx = TradingContext(balances=cfg.exchange.dry_run_balances)
        transport = DryRunTransport()
    else:
        ctx = TradingContext(balances=fetch_free_balances(exchange))
        ccxt_symbol = market.extra.get("ccxt_symbol", market.symbol)
        transport = CcxtOrderTransport(exchange, symbol_map={market.symbol: ccxt_symbol})

    notifier = build_notifier(cfg.notifier.slack_webhook_url, timeout=cfg.notifier.timeout)
    return KLineStrategy(cfg.strategy, market, ctx, transport, notifier=notifier)


async def run_strategy(strategy: KLineStrategy, source: KLineSource, max_events: int | None = None) -> int:
    strategy.initialize(source)
    return await strategy.run(source, max_events=max_events)


def main(argv: list[str] | None = None) -> Any:
    args = parse_args(argv)
    cfg = load_config(args.config)
    set_log_level(getattr(logging, cfg.log_level.upper(), logging.INFO))
    logger = setup_logger("main")

    if args.task == "check-config":
        for detector in cfg.strategy.detectors:
            logger.info(detector.describe())
        logger.info(f"{len(cfg.strategy.detectors)} detectors on {cfg.strategy.symbol}")
        return cfg

    if args.task == "runner":
        exchange = build_exchange(cfg.exchange.name, cfg.exchange.api_key, cfg.exchange.api_secret)
        strategy = build_strategy(cfg, exchange)
        source = get_kline_source(cfg.exchange.name, rest_url=cfg.exchange.rest_url, ws_url=cfg.exchange.ws_url)
        mode = "DRY-RUN" if cfg.exchange.dry_run else "LIVE"
        logger.info(f"Starting {mode} kline strategy on {cfg.strategy.symbol}")
        try:
            count = asyncio.run(run_strategy(strategy, source, args.max_events))
        except KeyboardInterrupt:
            logger.info("Interrupted, bye.")
            return None
        logger.info(f"Processed {count} closed klines")
        return count

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
FGSIGNAL CLI - Evaluate signals and record confirmed executions.

Usage:
    python -m fgsignal evaluate --ticker SPY --user 12345
    python -m fgsignal confirm 12345 BUY 512.30 --ticker SPY
    python -m fgsignal executions 12345
    python -m fgsignal position 12345 --ticker SPY
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from typing import List, Optional

from .config import get_config
from .errors import FrequencyLimitExceeded, PositionStateError, SignalError, StoreOperationFailed
from .fallback import is_unavailable
from .frequency import month_name
from .market_calendar import get_holiday, is_trading_day
from .service import SignalService

logger = logging.getLogger("fgsignal")


def _parse_date(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def cmd_evaluate(service: SignalService, args) -> int:
    today = datetime.now(timezone.utc)
    if args.trading_days_only and not is_trading_day(today):
        holiday = get_holiday(today)
        reason = holiday.name if holiday else "weekend"
        logger.info(f"Market closed today ({reason}); skipping evaluation")
        return 0

    signal = service.evaluate_ticker(args.ticker, user=args.user)
    if args.json:
        print(json.dumps(signal.to_dict(), indent=2))
        return 0

    ind = signal.indicators
    print(f"{signal.type.value}  {args.ticker or get_config().trading.default_symbol}")
    if not is_unavailable(signal):
        print(f"  Price:   ${signal.current_price:.2f}")
        print(f"  SMA:     20 ${ind.sma20:.2f} | 50 ${ind.sma50:.2f} | "
              f"100 ${ind.sma100:.2f} | 200 ${ind.sma200:.2f}")
        print(f"  BB:      ${ind.bollinger_lower:.2f} / ${ind.bollinger_middle:.2f} / "
              f"${ind.bollinger_upper:.2f}")
        if signal.entry_price is not None:
            print(f"  Entry:   ${signal.entry_price:.2f}  Target: ${signal.sell_target:.2f}")
    for reason in signal.reasons:
        print(f"  - {reason}")
    return 0


def cmd_confirm(service: SignalService, args) -> int:
    try:
        date = _parse_date(args.date) if args.date else None
        record = service.confirm_execution(
            args.user, args.ticker, args.side, args.price,
            date=date, signal_price=args.signal_price,
        )
    except FrequencyLimitExceeded as e:
        print(f"{e} ({month_name(e.last_execution_date)} already used)")
        return 2
    except ValueError as e:
        print(f"Invalid input: {e}")
        return 1
    except (PositionStateError, StoreOperationFailed) as e:
        print(str(e))
        return 1
    print(f"Recorded {record.signal_type.value} {record.ticker} @ ${record.execution_price:.2f} "
          f"on {record.execution_date:%Y-%m-%d}")
    return 0


def cmd_executions(service: SignalService, args) -> int:
    executions = service.store.list_executions(args.user, args.ticker)
    if args.json:
        print(json.dumps([e.to_dict() for e in executions], indent=2))
        return 0
    if not executions:
        print("No executions recorded")
        return 0
    for e in executions:
        print(f"{e.execution_date:%Y-%m-%d}  {e.signal_type.value:<4}  {e.ticker:<6}  "
              f"${e.execution_price:.2f}")
    return 0


def cmd_position(service: SignalService, args) -> int:
    store = service.store
    if args.set is not None:
        if not args.ticker:
            print("--set needs --ticker")
            return 1
        store.set_position(args.user, args.ticker, args.set)
    elif args.clear:
        if not args.ticker:
            print("--clear needs --ticker")
            return 1
        if not store.clear_position(args.user, args.ticker):
            print(f"No open position for {args.ticker.upper()}")
            return 0

    positions = ([p for p in [store.get_position(args.user, args.ticker)] if p]
                 if args.ticker else store.list_positions(args.user))
    if not positions:
        print("No open positions")
    for p in positions:
        print(f"{p.ticker:<6}  entry ${p.entry_price:.2f}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fgsignal",
        description="Fear & Greed BUY/SELL/HOLD signal engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("evaluate", help="Evaluate the current signal for a ticker")
    p.add_argument("--ticker", type=str, help="Ticker symbol (default from config)")
    p.add_argument("--user", type=str, help="User id for position-aware evaluation")
    p.add_argument("--json", action="store_true", help="Print the signal as JSON")
    p.add_argument("--trading-days-only", action="store_true",
                   help="Skip evaluation on weekends and US market holidays")
    p.set_defaults(func=cmd_evaluate)

    p = sub.add_parser("confirm", help="Record a confirmed BUY or SELL")
    p.add_argument("user", type=str)
    p.add_argument("side", type=str.upper, choices=["BUY", "SELL"])
    p.add_argument("price", type=float)
    p.add_argument("--ticker", type=str, default=None)
    p.add_argument("--date", type=str, help="Execution date (ISO 8601, default now)")
    p.add_argument("--signal-price", type=float, help="Price shown when the signal fired")
    p.set_defaults(func=cmd_confirm)

    p = sub.add_parser("executions", help="List a user's executions, newest first")
    p.add_argument("user", type=str)
    p.add_argument("--ticker", type=str)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_executions)

    p = sub.add_parser("position", help="Show, set or clear a user's open position")
    p.add_argument("user", type=str)
    p.add_argument("--ticker", type=str)
    p.add_argument("--set", type=float, metavar="ENTRY_PRICE")
    p.add_argument("--clear", action="store_true")
    p.set_defaults(func=cmd_position)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if getattr(args, "ticker", None) is None and args.command == "confirm":
        args.ticker = get_config().trading.default_symbol

    service = SignalService()
    try:
        return args.func(service, args)
    except SignalError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())

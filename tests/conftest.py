import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from market.models import Candle, Market  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

_INTERVAL_DELTAS = {
    "1m": timedelta(minutes=1),
    "5m": timedelta(minutes=5),
    "1h": timedelta(hours=1),
    "1d": timedelta(days=1),
}


def make_candle(o, h, l, c, idx=0, interval="1m", symbol="BTCUSDT") -> Candle:
    delta = _INTERVAL_DELTAS[interval]
    start = T0 + delta * idx
    return Candle(
        symbol=symbol,
        interval=interval,
        open=float(o),
        high=float(h),
        low=float(l),
        close=float(c),
        start_ts=start,
        end_ts=start + delta - timedelta(milliseconds=1),
    )


class FakeClock:
    """可手动拨动的秒级时钟。"""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    def __init__(self):
        self.messages: list[tuple[str, tuple]] = []

    def notify(self, message, *attachments):
        self.messages.append((message, attachments))

    def texts(self) -> list[str]:
        return [m for m, _ in self.messages]


@pytest.fixture
def candle():
    return make_candle


@pytest.fixture
def clock():
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def market():
    return Market(
        symbol="BTCUSDT",
        base_currency="BTC",
        quote_currency="USDT",
        min_quantity=0.0001,
        min_amount=10.0,
        min_notional=5.0,
        min_lot=0.0001,
        quantity_precision=4,
        price_precision=2,
    )

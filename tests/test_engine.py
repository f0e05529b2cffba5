from conftest import make_candle
from market.window import CandleWindow
from strategy.detector import KLineDetector
from strategy.engine import DetectorEngine


def _engine(*detectors):
    return DetectorEngine(detectors)


def test_intervals_keep_first_seen_order():
    engine = _engine(
        KLineDetector(interval="5m", min_max_price_change=5),
        KLineDetector(interval="1m", min_max_price_change=5),
        KLineDetector(interval="5m", min_max_price_change=10),
    )
    assert len(engine) == 3
    assert engine.intervals() == ["5m", "1m"]


def test_other_interval_detectors_are_skipped():
    engine = _engine(
        KLineDetector(interval="5m", min_max_price_change=5),
        KLineDetector(interval="1m", min_max_price_change=5),
    )
    k = make_candle(102, 103, 90, 101)
    results = engine.evaluate(k, CandleWindow([k]))
    assert len(results) == 1
    assert results[0].detector.interval == "1m"


def test_stop_detector_suppresses_later_ones():
    first = KLineDetector(name="a", interval="1m", min_max_price_change=5, stop=True)
    second = KLineDetector(name="b", interval="1m", min_max_price_change=5)
    k = make_candle(102, 103, 90, 101)

    results = _engine(first, second).evaluate(k)
    assert [r.detector.name for r in results] == ["a"]
    assert results[0].ok


def test_stop_detector_that_misses_does_not_stop():
    first = KLineDetector(name="a", interval="1m", min_max_price_change=50, stop=True)
    second = KLineDetector(name="b", interval="1m", min_max_price_change=5)
    k = make_candle(102, 103, 90, 101)

    results = _engine(first, second).evaluate(k)
    assert [(r.detector.name, r.ok) for r in results] == [("a", False), ("b", True)]


def test_without_stop_all_matching_detectors_report():
    first = KLineDetector(name="a", interval="1m", min_max_price_change=5)
    second = KLineDetector(name="b", interval="1m", min_max_price_change=8)
    k = make_candle(102, 103, 90, 101)
    assert [r.ok for r in _engine(first, second).evaluate(k)] == [True, True]

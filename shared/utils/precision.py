"""精度与步进工具（用于 qty/price 的裁剪与下单字符串）。"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, Decimal, InvalidOperation


def decimals_from_step(step: float) -> int:
    """根据 step（通常是 10 的负次幂）推导小数位数。"""
    try:
        d = Decimal(str(step))
    except InvalidOperation:
        return 0
    if d == 0:
        return 0
    exp = d.normalize().as_tuple().exponent
    return max(0, -int(exp))


def snap_to_decimals(value: float, decimals: int) -> float:
    """把 float “钉死”到指定小数位，避免 repr 出现 0.30000000000004 这类噪声。"""
    if decimals < 0:
        return float(value)
    return float(f"{float(value):.{decimals}f}")


def _to_step(value: float, step: float, rounding: str) -> float:
    if step is None or step <= 0:
        return float(value)
    v = Decimal(str(value))
    sd = Decimal(str(step))
    n = (v / sd).to_integral_value(rounding=rounding)
    decs = decimals_from_step(step)
    return snap_to_decimals(float(n * sd), decs)


def floor_to_step(value: float, step: float) -> float:
    """把 value 向零方向裁剪到 step 的整数倍（数量永远不向上取整）。"""
    return _to_step(value, step, ROUND_DOWN)


def ceil_to_step(value: float, step: float) -> float:
    """把 value 向上取整到 step 的整数倍（仅用于满足最小名义额）。"""
    return _to_step(value, step, ROUND_CEILING)


def truncate_to_precision(value: float, precision: int) -> float:
    """按小数位截断（toward zero）。"""
    if precision < 0:
        return float(value)
    quantum = Decimal(1).scaleb(-precision)
    out = Decimal(str(value)).quantize(quantum, rounding=ROUND_DOWN)
    return snap_to_decimals(float(out), precision)


def format_decimal(value: float, precision: int) -> str:
    """截断后格式化为固定小数位字符串（交易所下单用）。"""
    precision = max(0, int(precision))
    return f"{truncate_to_precision(value, precision):.{precision}f}"

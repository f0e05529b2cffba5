"""下单规模计算失败的类型化错误。

策略层捕获 `SizingError` 后跳过本次动作并发通知，不视为致命错误。
"""


class SizingError(Exception):
    """无法给出合法下单数量。"""


class InsufficientBalanceError(SizingError):
    """可用余额不足（扣除保留额后）。"""


class BelowMinNotionalError(SizingError):
    """在所有约束下都无法达到交易所最小下单金额。"""


class NoProfitableInventoryError(SizingError):
    """没有成本低于目标价的持仓可卖。"""

"""账户约束下的下单规模计算。

`VolumeCalculator` 只管曲线与交易对规则；这里在交易上下文的锁内读取余额、
叠加保留额/库存约束、调用计算器并占用资金，最后生成不可变的 `Order`。
"""

from __future__ import annotations

from broker.base import TradingContext
from market.models import Order, Side
from shared.config.schema import SizingConfig
from sizing.errors import InsufficientBalanceError, NoProfitableInventoryError
from sizing.volume import VolumeCalculator


def hold_currency(order: Order, calculator: VolumeCalculator) -> tuple[str, float]:
    """订单占用的币种与数量：买单占 quote（名义额），卖单占 base（数量）。"""
    market = calculator.market
    if order.side == Side.BUY:
        return market.quote_currency, order.quantity * (order.price or 0.0)
    return market.base_currency, order.quantity


def size_order(
    calculator: VolumeCalculator,
    ctx: TradingContext,
    cfg: SizingConfig,
    *,
    price: float,
    change: float,
    side: Side,
    reason: str | None = None,
) -> Order:
    """计算下单数量并生成订单。

    Parameters
    ----------
    calculator:
        该交易对的数量计算器。
    ctx:
        共享交易上下文；整个“读余额 -> 定数量 -> 占资金”过程持有它的锁。
    cfg:
        账户侧约束配置。
    price:
        当前价格。
    change:
        带符号价格变化。
    side:
        买/卖方向。

    Raises
    ------
    SizingError
        余额不足、达不到最小金额、没有可盈利库存。
    """
    market = calculator.market
    min_amount = market.effective_min_amount

    with ctx:
        if side == Side.BUY:
            available = ctx.available(market.quote_currency) - cfg.quote_reserve
            if available <= 0 or available < min_amount:
                raise InsufficientBalanceError(
                    f"insufficient {market.quote_currency}: available {max(available, 0.0):.4f} "
                    f"after reserve {cfg.quote_reserve:.4f} < min amount {min_amount:.4f}"
                )
            ceilings = [available] + ([cfg.max_amount] if cfg.max_amount is not None else [])
            quantity = calculator.quantity(price, change, side, max_amount=min(ceilings))
        else:
            available = ctx.available(market.base_currency)
            if available <= 0:
                raise InsufficientBalanceError(
                    f"insufficient {market.base_currency}: available {available:.8f}"
                )
            max_quantity = available
            if cfg.min_profit_spread is not None:
                target = price - price * cfg.fee_rate - cfg.min_profit_spread
                # 已被待提交卖单占用的数量不能再卖第二次
                profitable = ctx.profitable_quantity(target) - ctx.held.get(market.base_currency, 0.0)
                if profitable <= 0:
                    raise NoProfitableInventoryError(
                        f"no unreserved inventory bought below {target:.4f} to sell at {price:.4f}"
                    )
                max_quantity = min(max_quantity, profitable)
            quantity = calculator.quantity(
                price, change, side, max_amount=cfg.max_amount, max_quantity=max_quantity
            )

        order = Order(
            symbol=market.symbol,
            side=side,
            quantity=quantity,
            quantity_str=market.format_quantity(quantity),
            price=price,
            reason=reason,
        )
        ctx.hold(*hold_currency(order, calculator))
    return order

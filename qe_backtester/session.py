"""
Backtest Session
----------------
Replays one trading session candle by candle and drives every order through
its lifecycle:

    PENDING -> ACTIVE -> CLOSED_TP_HIT | CLOSED_SL_HIT | CLOSED_MANUAL
                         | CLOSED_CANCELED | CLOSED_UNKNOWN

Orders are immutable; a transition replaces the order at its list position.

Per candle, for each order in insertion order:
1. Open check (PENDING): entry inside [low, high] fills the order. A fill
   ends the evaluation of that order for the candle, OHLC data cannot tell
   whether SL/TP were touched before or after the fill.
2. Close check (ACTIVE, or PENDING on the last candle): SL/TP touches and the
   forced close on the session's last candle.
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Sequence

from .models import Candle, Order, OrderStatus, SessionStatus
from .strategies import Strategy

logger = logging.getLogger(__name__)


def _close_status(order: Order, candle: Candle, is_last: bool) -> OrderStatus | None:
    """Resolves the closing status for `order` on `candle`, or None to stay open."""
    if order.status is OrderStatus.ACTIVE:
        sl_hit = candle.contains(order.stop_loss)
        tp_hit = candle.contains(order.take_profit)
        if sl_hit and tp_hit:
            return OrderStatus.CLOSED_UNKNOWN
        if sl_hit:
            return OrderStatus.CLOSED_SL_HIT
        if tp_hit:
            return OrderStatus.CLOSED_TP_HIT
        return OrderStatus.CLOSED_MANUAL if is_last else None

    if order.status is OrderStatus.PENDING and is_last:
        return OrderStatus.CLOSED_CANCELED
    return None


def _close_price(order: Order, status: OrderStatus, candle: Candle) -> float | None:
    if status is OrderStatus.CLOSED_TP_HIT:
        return order.take_profit
    if status is OrderStatus.CLOSED_SL_HIT:
        return order.stop_loss
    if status in (OrderStatus.CLOSED_MANUAL, OrderStatus.CLOSED_CANCELED):
        return candle.close
    return None


class BacktestSession:
    """Runs a strategy over the candles of a single trading session."""

    def __init__(
        self,
        strategy: Strategy,
        candles: Sequence[Candle],
        *,
        first_candle_time: time,
        last_candle_time: time,
        session_id: str | None = None,
    ) -> None:
        self.strategy = strategy
        self.candles = list(candles)
        self.first_candle_time = first_candle_time
        self.last_candle_time = last_candle_time
        self.session_id = session_id or (self.candles[0].date if self.candles else "")
        self._orders: list[Order] = []
        self._status = SessionStatus.PENDING

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def orders(self) -> tuple[Order, ...]:
        return tuple(self._orders)

    def start_session(self) -> SessionStatus:
        """
        Processes every candle once. Only a PENDING session runs; calling this
        again afterwards is a no-op. Any exception marks the session FAILED and
        keeps the orders built so far.
        """
        if self._status is not SessionStatus.PENDING:
            return self._status

        self._status = SessionStatus.STARTED
        try:
            for candle in self.candles:
                self._step(candle)
        except Exception:
            logger.exception(
                "session %s failed after %d orders", self.session_id, len(self._orders)
            )
            self._status = SessionStatus.FAILED
            return self._status

        self._status = SessionStatus.COMPLETED
        logger.info(
            "session %s completed: %d candles, %d orders",
            self.session_id,
            len(self.candles),
            len(self._orders),
        )
        return self._status

    def _step(self, candle: Candle) -> None:
        self.strategy.push(candle)

        if candle.time == self.first_candle_time:
            return

        n_prior = len(self._orders)
        intent = self.strategy.get_status()
        if intent is not None:
            self._orders.append(intent)
            logger.debug("session %s new order: %s", self.session_id, intent)

        is_last = candle.time == self.last_candle_time
        for i, order in enumerate(self._orders):
            updated = self._update_order(order, candle, is_last, is_new=i >= n_prior)
            if updated is order:
                continue
            self._orders[i] = updated
            if updated.status is not order.status:
                logger.debug("session %s order %d -> %s", self.session_id, i, updated)

    def _update_order(
        self, order: Order, candle: Candle, is_last: bool, *, is_new: bool = False
    ) -> Order:
        if order.status.is_closed:
            return order

        if (
            order.status is OrderStatus.PENDING
            and not is_last
            and candle.contains(order.entry_price)
        ):
            return order.evolve(status=OrderStatus.ACTIVE, start_time=candle.time)

        # An order created on this candle entered at its close; the range came first.
        if (
            order.status is OrderStatus.ACTIVE
            and order.excursion is not None
            and not is_new
        ):
            excursion = order.excursion.extend(candle, order.direction)
            order = order.evolve(excursion=excursion)

        status = _close_status(order, candle, is_last)
        if status is None:
            return order

        return order.evolve(
            status=status,
            close_price=_close_price(order, status, candle),
            close_time=candle.time,
        )

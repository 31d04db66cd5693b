"""Price alert evaluation."""

import asyncio
import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from coinwatch.db import AlertStore
from coinwatch.errors import (
    ALERT_CHECK_ERROR,
    PRICE_CHECK_FAILED,
    PRICE_NOT_FOUND,
    PriceCheckError,
    PriceNotFoundError,
)
from coinwatch.models import (
    AlertWithOwner,
    CheckResult,
    Direction,
    PriceAlertNotification,
    PriceRequest,
    RunSummary,
)
from coinwatch.notifications import NotificationService
from coinwatch.providers import MAX_SYMBOLS_PER_REQUEST, PriceService

logger = logging.getLogger(__name__)

EVALUATION_CURRENCY = "USD"


def evaluate_condition(
    current_price: Union[float, Decimal],
    target_price: Union[float, Decimal],
    direction: Direction,
) -> bool:
    """Return True if the price has reached the target in the alert's direction.

    Both bounds are inclusive: a CROSS_UP alert fires at exactly the target.
    """
    current = Decimal(str(current_price))
    target = Decimal(str(target_price))
    if Direction(direction) == Direction.CROSS_UP:
        return current >= target
    return current <= target


def group_by_symbol(alerts: list[AlertWithOwner]) -> dict[str, list[AlertWithOwner]]:
    grouped: dict[str, list[AlertWithOwner]] = {}
    for alert in alerts:
        grouped.setdefault(alert.symbol, []).append(alert)
    return grouped


class PriceAlertChecker:
    """Checks active alerts against live prices and fires the ones that crossed.

    A fired alert is notified (when its owner has a device token) and then
    deactivated, in that order, whatever the notification outcome.
    """

    def __init__(
        self,
        store: AlertStore,
        price_service: PriceService,
        notification_service: Optional[NotificationService] = None,
    ):
        self.store = store
        self.price_service = price_service
        self.notification_service = notification_service

    async def check_all_active_alerts(self) -> RunSummary:
        """Run one evaluation pass over every active alert.

        Returns:
            RunSummary with per-alert results and collected errors.

        Raises:
            PriceCheckError: If quotes could not be fetched. Nothing is
                notified or deactivated in that case.
        """
        alerts = await asyncio.to_thread(self.store.find_active_alerts)
        if not alerts:
            logger.info("No active alerts to check")
            return RunSummary.empty()

        by_symbol = group_by_symbol(alerts)
        prices = await self._fetch_prices(list(by_symbol))

        results: list[CheckResult] = []
        errors: list[str] = []
        for alert in alerts:
            current_price = prices.get(alert.symbol)
            if current_price is None:
                errors.append(f"{PRICE_NOT_FOUND} {alert.symbol}")
                logger.warning("No price for %s (alert %s)", alert.symbol, alert.id)
                continue

            result = self._build_result(alert, current_price)
            results.append(result)
            if not result.condition_met:
                continue
            try:
                await self._process_triggered_alert(result)
            except sqlite3.Error as e:
                message = f"{ALERT_CHECK_ERROR} {alert.id}: {e}"
                errors.append(message)
                logger.error(message)

        summary = RunSummary(
            total_alerts=len(alerts),
            checked_alerts=len(results),
            triggered_alerts=sum(1 for r in results if r.condition_met),
            errors=errors,
            results=results,
        )
        logger.info(
            "Checked %d/%d alerts, %d triggered, %d errors",
            summary.checked_alerts,
            summary.total_alerts,
            summary.triggered_alerts,
            len(summary.errors),
        )
        return summary

    async def check_specific_alert(self, alert_id: str) -> Optional[CheckResult]:
        """Evaluate a single alert.

        Returns:
            The check result, or None if the alert is missing or inactive.

        Raises:
            PriceNotFoundError: If no quote is available for the symbol.
        """
        alert = await asyncio.to_thread(self.store.find_alert, alert_id)
        if alert is None or not alert.active:
            return None

        quote = await self.price_service.get_price(alert.symbol, EVALUATION_CURRENCY)
        if quote is None:
            raise PriceNotFoundError(alert.symbol)

        result = self._build_result(alert, quote.price)
        if result.condition_met:
            await self._process_triggered_alert(result)
        return result

    async def _fetch_prices(self, symbols: list[str]) -> dict[str, float]:
        prices: dict[str, float] = {}
        for start in range(0, len(symbols), MAX_SYMBOLS_PER_REQUEST):
            batch = symbols[start:start + MAX_SYMBOLS_PER_REQUEST]
            response = await self.price_service.get_prices(
                PriceRequest(symbols=batch, currency=EVALUATION_CURRENCY)
            )
            if not response.success:
                detail = ", ".join(response.errors) or "Unknown error"
                logger.error("Price fetch failed for %s: %s", ",".join(batch), detail)
                raise PriceCheckError(f"{PRICE_CHECK_FAILED}: {detail}")
            for quote in response.data:
                prices[quote.symbol.upper()] = quote.price
        return prices

    @staticmethod
    def _build_result(alert: AlertWithOwner, current_price: float) -> CheckResult:
        return CheckResult(
            alert_id=alert.id,
            symbol=alert.symbol,
            target_price=alert.target_price,
            current_price=current_price,
            direction=alert.direction,
            condition_met=evaluate_condition(current_price, alert.target_price, alert.direction),
            user_id=alert.user_id,
            device_token=alert.device_token or None,
        )

    async def _process_triggered_alert(self, result: CheckResult) -> None:
        try:
            if result.device_token and self.notification_service is not None:
                push = await self.notification_service.send_price_alert_notification(
                    result.device_token,
                    PriceAlertNotification(
                        symbol=result.symbol,
                        current_price=result.current_price,
                        target_price=result.target_price,
                        direction=result.direction,
                        alert_id=result.alert_id,
                    ),
                )
                if not push.success:
                    logger.warning("Notification for alert %s failed: %s", result.alert_id, push.error)
            elif result.device_token:
                logger.warning("Alert %s fired but notifications are not configured", result.alert_id)
        finally:
            # A fired alert is disarmed whether or not the push went out
            await asyncio.to_thread(self.store.deactivate_triggered_alert, result.alert_id, datetime.now())
        logger.info(
            "Alert %s fired: %s %s %s (target %s)",
            result.alert_id,
            result.symbol,
            result.direction.value,
            result.current_price,
            result.target_price,
        )

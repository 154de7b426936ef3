"""
Plausibility scoring for quotes.

Every quote starts at full confidence and loses a fixed penalty per
detected anomaly. Penalties are independent and add up; the score never
drops below zero.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..api.schemas import Quote, ValidationResult
from ..utils import ensure_utc, utc_now

INVALID_PRICE_PENALTY = 0.3
EXTREME_CHANGE_PENALTY = 0.2
INVALID_VOLUME_PENALTY = 0.2
MISSING_TIMESTAMP_PENALTY = 0.1
STALE_DATA_PENALTY = 0.2

EXTREME_CHANGE_PERCENT = 20.0
VALIDITY_THRESHOLD = 0.5


class QuoteValidator:
    """Scores a single quote and lists what looks wrong with it."""

    def __init__(
        self,
        stale_after_seconds: float = 300.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self._clock = clock

    def validate(self, quote: Quote, source: Optional[str] = None) -> ValidationResult:
        anomalies: List[str] = []
        confidence = 1.0

        if quote.price is None or quote.price <= 0:
            anomalies.append("Invalid price value")
            confidence -= INVALID_PRICE_PENALTY

        if abs(quote.change_percent or 0.0) > EXTREME_CHANGE_PERCENT:
            anomalies.append("Extreme price change detected")
            confidence -= EXTREME_CHANGE_PENALTY

        if quote.volume is not None and quote.volume < 0:
            anomalies.append("Invalid volume value")
            confidence -= INVALID_VOLUME_PENALTY

        last_updated = ensure_utc(quote.last_updated)
        if last_updated is None:
            anomalies.append("Missing timestamp")
            confidence -= MISSING_TIMESTAMP_PENALTY
        elif self._clock() - last_updated > self.stale_after:
            anomalies.append("Data is stale")
            confidence -= STALE_DATA_PENALTY

        # Rounded so that e.g. 1.0 - 0.3 - 0.2 reads as 0.5, not 0.49999999999999994
        confidence = round(max(confidence, 0.0), 6)

        return ValidationResult(
            confidence=confidence,
            is_valid=confidence > VALIDITY_THRESHOLD,
            anomalies=anomalies,
            source=source if source is not None else quote.source,
        )

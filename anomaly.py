import logging
import math
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

MIN_HISTORY = 5
HISTORY_MONTHS = 2
Z_SCORE_THRESHOLD = 2.5
ABSOLUTE_AMOUNT_THRESHOLD = 5000
SPIKE_MULTIPLIER = 1.5


@dataclass(frozen=True)
class AnomalyResult:
    is_anomaly: bool
    score: float
    reason: str


def _plain(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def detect_anomaly(
    amount: float, category: str, history: Iterable[float]
) -> AnomalyResult:
    """Score ``amount`` against recent same-category spending.

    The score is always the z-score, even when only the absolute or spike
    rule fired. Reasons are joined in rule order.
    """
    amounts = [float(value) for value in history]
    if len(amounts) < MIN_HISTORY:
        logger.info(
            f"anomaly_skip: category={category} history={len(amounts)} "
            "reason=insufficient_history"
        )
        return AnomalyResult(False, 0, "Insufficient historical data")

    amount = float(amount)
    mean = sum(amounts) / len(amounts)
    variance = sum((value - mean) ** 2 for value in amounts) / len(amounts)
    std_dev = math.sqrt(variance)
    z_score = abs(amount - mean) / std_dev if std_dev > 0 else 0

    reasons: list[str] = []
    if z_score > Z_SCORE_THRESHOLD:
        reasons.append(
            f"Amount ({_plain(amount)}) is significantly higher than average "
            f"({mean:.2f}) for {category}. (Z-score: {z_score:.2f})"
        )
    if amount > ABSOLUTE_AMOUNT_THRESHOLD and amount > mean * 2:
        reasons.append(f"Very high amount ({_plain(amount)}) for a single transaction.")
    highest = max(amounts)
    if amount > highest * SPIKE_MULTIPLIER:
        reasons.append(
            f"Amount ({_plain(amount)}) is a significant spike compared to "
            f"previous high ({highest:.2f}) for {category}."
        )

    if not reasons:
        return AnomalyResult(False, z_score, "No anomaly detected")
    reason = " And ".join(reasons)
    logger.warning(
        f"anomaly_detected: category={category} amount={_plain(amount)} "
        f"score={z_score:.2f}"
    )
    return AnomalyResult(True, z_score, reason)

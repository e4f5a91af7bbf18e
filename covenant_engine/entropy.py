"""
Covenant headroom as an information-entropy risk signal.

Headroom is mapped through a sigmoid to a bounded entropy score in [0, 1]
(1 = far from the threshold, 0 = at or beyond it). Velocity and acceleration
of that score over the test history drive the attention level (1-5) and the
alert priority (0-100) used to rank covenants across a portfolio.
"""
import math
from typing import List, Optional, Sequence

import structlog

from covenant_engine.config import EngineConfig
from covenant_engine.models import Covenant, EntropyMetrics, TestPoint

logger = structlog.get_logger(__name__)

# Weights of the attention risk score
ENTROPY_WEIGHT = 0.5
VELOCITY_WEIGHT = 0.3
ACCELERATION_WEIGHT = 0.2

ATTENTION_LEVEL_LABELS = {
    5: "Critical Attention Required",
    4: "High Priority Monitoring",
    3: "Elevated Monitoring",
    2: "Standard Monitoring",
    1: "Low Priority",
}

NEUTRAL_METRICS = EntropyMetrics(
    entropy=0.5,
    velocity=0.0,
    acceleration=0.0,
    information_content=0.5,
    attention_level=3,
    alert_priority=50.0,
    interpretation="Insufficient data for entropy analysis",
)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ── Entropy Mapping ───────────────────────────────────────────────────

def headroom_to_entropy(headroom: float, config: Optional[EngineConfig] = None) -> float:
    """Map headroom (%) to entropy via E = 1 / (1 + e^(-k(x - x0))).

    Monotonically non-decreasing in headroom; exactly 0.5 at the inflection
    point (15% by default).
    """
    cfg = config or EngineConfig()
    exponent = -cfg.sigmoid_steepness * (headroom - cfg.sigmoid_inflection)
    try:
        entropy = 1.0 / (1.0 + math.exp(exponent))
    except OverflowError:
        # Deep breach: e^exponent exceeds float range, entropy -> 0
        entropy = 0.0
    return _clamp(entropy, 0.0, 1.0)


def information_content(entropy: float) -> float:
    return 1.0 - entropy


def _entropy_series(history: Sequence[TestPoint], config: Optional[EngineConfig]) -> List[float]:
    return [headroom_to_entropy(p.headroom_percentage, config) for p in history]


def entropy_velocity(history: Sequence[TestPoint], config: Optional[EngineConfig] = None) -> float:
    """Entropy change between the two most recent tests; 0 with fewer than 2."""
    if len(history) < 2:
        return 0.0
    series = _entropy_series(history[-2:], config)
    return series[-1] - series[-2]


def entropy_acceleration(history: Sequence[TestPoint], config: Optional[EngineConfig] = None) -> float:
    """Change between the two most recent velocities; 0 with fewer than 3 tests."""
    if len(history) < 3:
        return 0.0
    series = _entropy_series(history[-3:], config)
    return (series[2] - series[1]) - (series[1] - series[0])


# ── Attention & Priority ──────────────────────────────────────────────

def determine_attention_level(entropy: float, velocity: float, acceleration: float) -> int:
    """Bucket a weighted risk score into attention levels 1 (minimal) .. 5 (critical).

    Only deteriorating dynamics (negative velocity / acceleration) add risk.
    """
    entropy_risk = 1.0 - entropy
    velocity_risk = _clamp(abs(velocity) * 5, 0.0, 1.0) if velocity < 0 else 0.0
    acceleration_risk = _clamp(abs(acceleration) * 10, 0.0, 1.0) if acceleration < 0 else 0.0

    risk_score = (
        entropy_risk * ENTROPY_WEIGHT
        + velocity_risk * VELOCITY_WEIGHT
        + acceleration_risk * ACCELERATION_WEIGHT
    )

    if risk_score >= 0.8:
        return 5
    if risk_score >= 0.6:
        return 4
    if risk_score >= 0.4:
        return 3
    if risk_score >= 0.2:
        return 2
    return 1


def attention_level_label(level: int) -> str:
    return ATTENTION_LEVEL_LABELS.get(level, "Unknown")


def calculate_alert_priority(entropy: float, velocity: float, acceleration: float) -> float:
    """Alert priority 0-100: attention level base plus deterioration boosts."""
    level = determine_attention_level(entropy, velocity, acceleration)
    priority = level * 20 + max(0.0, -velocity) * 20 + max(0.0, -acceleration) * 30
    return _clamp(priority, 0.0, 100.0)


def entropy_interpretation(entropy: float, velocity: float, attention_level: int) -> str:
    info_pct = information_content(entropy) * 100

    if attention_level == 5:
        trend = "rapidly decreasing" if velocity < 0 else "unstable"
        return (f"Critical: Information density is extremely high ({info_pct:.1f}%), "
                f"indicating imminent risk. Entropy is {trend}.")
    if attention_level == 4:
        trend = "declining" if velocity < 0 else "volatile"
        return (f"High Alert: Significant information content ({info_pct:.1f}%) with "
                f"{trend} entropy. Headroom compression detected.")
    if attention_level == 3:
        trend = "trending downward" if velocity < 0 else "fluctuating"
        return (f"Elevated: Moderate information content ({info_pct:.1f}%). Entropy "
                f"{trend}, requiring closer monitoring.")
    if attention_level == 2:
        trend = "stable or improving" if velocity >= 0 else "slightly declining"
        return f"Stable: Low information content ({info_pct:.1f}%). Entropy remains {trend}."
    return (f"Healthy: Minimal information density ({info_pct:.1f}%). "
            f"High entropy indicates strong safety buffer.")


# ── Covenant Metrics ──────────────────────────────────────────────────

def calculate_covenant_entropy_metrics(
    history: Sequence[TestPoint],
    config: Optional[EngineConfig] = None,
) -> EntropyMetrics:
    """Compute entropy metrics from a chronologically ordered test history.

    An empty history is "unknown", not safe or critical: the neutral
    default (entropy 0.5, attention 3, priority 50) is returned.
    """
    if not history:
        return NEUTRAL_METRICS

    entropy = headroom_to_entropy(history[-1].headroom_percentage, config)
    velocity = entropy_velocity(history, config)
    acceleration = entropy_acceleration(history, config)

    level = determine_attention_level(entropy, velocity, acceleration)
    return EntropyMetrics(
        entropy=entropy,
        velocity=velocity,
        acceleration=acceleration,
        information_content=information_content(entropy),
        attention_level=level,
        alert_priority=calculate_alert_priority(entropy, velocity, acceleration),
        interpretation=entropy_interpretation(entropy, velocity, level),
    )


def covenant_test_series(covenant: Covenant) -> List[TestPoint]:
    """Test history with the latest test appended when it was not recorded there."""
    history = list(covenant.test_history)
    if covenant.latest_test.date not in {p.date for p in history}:
        history.append(covenant.latest_test)
    return history


def covenant_entropy_metrics(covenant: Covenant, config: Optional[EngineConfig] = None) -> EntropyMetrics:
    """Metrics for a covenant over its history plus the latest test."""
    history = covenant_test_series(covenant)
    metrics = calculate_covenant_entropy_metrics(history, config)
    logger.debug(
        "entropy_metrics_computed",
        covenant_id=covenant.id,
        points=len(history),
        entropy=round(metrics.entropy, 4),
        attention_level=metrics.attention_level,
        alert_priority=round(metrics.alert_priority, 2),
    )
    return metrics

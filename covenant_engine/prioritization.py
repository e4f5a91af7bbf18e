"""
Portfolio-level prioritization of covenants by entropy metrics.

Ranks, filters and aggregates covenants so attention goes to the ones whose
headroom is lowest or eroding fastest.
"""
import math
from functools import cmp_to_key
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from covenant_engine.config import EngineConfig
from covenant_engine.entropy import attention_level_label, covenant_entropy_metrics
from covenant_engine.models import Covenant, PortfolioEntropyHealth, RankedCovenant

logger = structlog.get_logger(__name__)


def rank_covenants(
    covenants: Sequence[Covenant],
    config: Optional[EngineConfig] = None,
) -> List[RankedCovenant]:
    """Pair each covenant with its entropy metrics, preserving input order."""
    return [
        RankedCovenant(covenant=c, metrics=covenant_entropy_metrics(c, config))
        for c in covenants
    ]


def _priority_key(ranked: RankedCovenant):
    # alert priority desc, attention desc, current headroom asc
    return (
        -ranked.metrics.alert_priority,
        -ranked.metrics.attention_level,
        ranked.covenant.latest_test.headroom_percentage,
    )


def rank_by_priority(
    covenants: Sequence[Covenant],
    config: Optional[EngineConfig] = None,
) -> List[RankedCovenant]:
    """Ranked covenants, most urgent first."""
    return sorted(rank_covenants(covenants, config), key=_priority_key)


# ── Sorting ───────────────────────────────────────────────────────────

def sort_by_entropy_priority(
    covenants: Sequence[Covenant],
    config: Optional[EngineConfig] = None,
) -> List[Covenant]:
    """Order covenants most-urgent first.

    Keys: alert priority (desc), attention level (desc), current headroom (asc).
    Sorting an already sorted list leaves it unchanged.
    """
    return [r.covenant for r in rank_by_priority(covenants, config)]


def sort_by_entropy_velocity(
    covenants: Sequence[Covenant],
    config: Optional[EngineConfig] = None,
) -> List[Covenant]:
    """Order covenants fastest-deteriorating first.

    Attention level (desc), then velocity (asc, most negative first). When two
    velocities are within the epsilon they are treated as equal and alert
    priority (desc) decides instead.
    """
    cfg = config or EngineConfig()

    def compare(a: RankedCovenant, b: RankedCovenant) -> int:
        if a.metrics.attention_level != b.metrics.attention_level:
            return b.metrics.attention_level - a.metrics.attention_level
        dv = a.metrics.velocity - b.metrics.velocity
        if abs(dv) >= cfg.velocity_epsilon:
            return -1 if dv < 0 else 1
        dp = b.metrics.alert_priority - a.metrics.alert_priority
        if dp == 0:
            return 0
        return -1 if dp < 0 else 1

    ranked = rank_covenants(covenants, cfg)
    return [r.covenant for r in sorted(ranked, key=cmp_to_key(compare))]


# ── Filtering ─────────────────────────────────────────────────────────

def filter_by_attention_level(
    covenants: Sequence[Covenant],
    min_level: int,
    config: Optional[EngineConfig] = None,
) -> List[Covenant]:
    """Keep covenants whose attention level is at least `min_level`, in input order."""
    return [
        r.covenant for r in rank_covenants(covenants, config)
        if r.metrics.attention_level >= min_level
    ]


def top_priority_covenants(
    covenants: Sequence[Covenant],
    n: int,
    config: Optional[EngineConfig] = None,
) -> List[Covenant]:
    if n <= 0:
        return []
    return sort_by_entropy_priority(covenants, config)[:n]


# ── Portfolio Health ──────────────────────────────────────────────────

def calculate_portfolio_entropy_health(
    covenants: Sequence[Covenant],
    config: Optional[EngineConfig] = None,
) -> PortfolioEntropyHealth:
    """Aggregate health score 0-100.

    health = 0.6 * (avg entropy * 100) + 0.4 * ((5 - avg attention) / 4 * 100),
    rounded half-up. An empty portfolio returns the neutral score 50.
    """
    if not covenants:
        return PortfolioEntropyHealth(health_score=50, avg_entropy=0.5, avg_attention_level=3.0)

    ranked = rank_covenants(covenants, config)
    entropies = np.array([r.metrics.entropy for r in ranked])
    levels = np.array([r.metrics.attention_level for r in ranked])

    avg_entropy = float(entropies.mean())
    avg_attention = float(levels.mean())
    raw_score = 0.6 * (avg_entropy * 100) + 0.4 * ((5 - avg_attention) / 4 * 100)

    health = PortfolioEntropyHealth(
        health_score=int(math.floor(raw_score + 0.5)),
        avg_entropy=avg_entropy,
        avg_attention_level=avg_attention,
        covenant_count=len(ranked),
        critical_count=int((levels == 5).sum()),
    )
    logger.debug(
        "portfolio_health_computed",
        covenants=health.covenant_count,
        health_score=health.health_score,
        critical=health.critical_count,
    )
    return health


# ── Watchlist Builder ─────────────────────────────────────────────────

def build_attention_watchlist(
    covenants: Sequence[Covenant],
    min_level: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> pd.DataFrame:
    """Covenants at or above an attention level, most urgent first.

    Defaults to the configured watchlist level (4: high priority and critical).
    """
    cfg = config or EngineConfig()
    level = cfg.watchlist_min_level if min_level is None else min_level

    ranked = rank_by_priority(covenants, cfg)
    rows = []
    for r in ranked:
        if r.metrics.attention_level < level:
            continue
        rows.append({
            "Covenant ID": r.covenant.id,
            "Name": r.covenant.name,
            "Headroom %": round(r.covenant.latest_test.headroom_percentage, 2),
            "Entropy": round(r.metrics.entropy, 4),
            "Velocity": round(r.metrics.velocity, 4),
            "Attention": r.metrics.attention_level,
            "Priority": round(r.metrics.alert_priority, 1),
            "Label": attention_level_label(r.metrics.attention_level),
        })

    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).reset_index(drop=True)

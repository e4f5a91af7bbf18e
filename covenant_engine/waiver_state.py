"""
Unified covenant / waiver state derivation.

A waiver is treated as the payload of a covenant's `waived` state rather than
a separate entity. Given a covenant and its waiver records this module
derives one authoritative display state, the active-waiver projection
(days remaining, trend, expiration risk) and the waiver state history.

All results are views: they are recomputed from the inputs on every call.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import structlog

from covenant_engine.config import EngineConfig
from covenant_engine.models import (
    ActiveWaiverState, ComplianceTrend, Covenant, CovenantStatus,
    CovenantWithWaiverState, ExpirationRisk, TestPoint, UnifiedCovenantState,
    UnifiedDisplayStatus, Waiver, WaiverExitReason, WaiverStateEntry, WaiverStatus,
)
from covenant_engine.style import STATUS_PRESENTATION, UNKNOWN_STATUS_PRESENTATION
from covenant_engine.utils import ONE_DAY, days_between, resolve_as_of

logger = structlog.get_logger(__name__)


# ── Waiver Lookups ────────────────────────────────────────────────────

def get_covenant_waivers(covenant_id: str, all_waivers: Sequence[Waiver]) -> List[Waiver]:
    return [w for w in all_waivers if w.covenant_id == covenant_id]


def _is_active(waiver: Waiver, as_of: datetime) -> bool:
    return (
        waiver.status == WaiverStatus.APPROVED
        and waiver.expiration_date is not None
        and waiver.expiration_date > as_of
    )


def find_active_waiver(waivers: Sequence[Waiver], as_of: Optional[datetime] = None) -> Optional[Waiver]:
    """First approved, unexpired waiver in the supplied order.

    Overlapping approvals for one covenant are not validated: the first
    matching waiver wins and the others are ignored.
    """
    now = resolve_as_of(as_of)
    return next((w for w in waivers if _is_active(w, now)), None)


def find_active_waiver_for_covenant(
    covenant_id: str,
    all_waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
) -> Optional[Waiver]:
    return find_active_waiver(get_covenant_waivers(covenant_id, all_waivers), as_of)


def find_pending_waivers(covenant_id: str, all_waivers: Sequence[Waiver]) -> List[Waiver]:
    return [
        w for w in all_waivers
        if w.covenant_id == covenant_id and w.status == WaiverStatus.PENDING
    ]


def find_recently_rejected_waiver(
    waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
    lookback_days: int = 30,
) -> Optional[Waiver]:
    """First rejected waiver decided within the lookback window (boundary inclusive)."""
    now = resolve_as_of(as_of)
    window = timedelta(days=lookback_days)
    for w in waivers:
        if w.status != WaiverStatus.REJECTED or w.decision_date is None:
            continue
        if now - w.decision_date <= window:
            return w
    return None


# ── Unified State ─────────────────────────────────────────────────────

def _select_display_status(
    covenant: Covenant,
    active_waiver: Optional[Waiver],
    has_pending: bool,
    recently_rejected: Optional[Waiver],
    now: datetime,
    cfg: EngineConfig,
):
    """Decision table: returns (display status, days until expiry or None, known status)."""
    if covenant.status == CovenantStatus.ACTIVE:
        headroom = covenant.latest_test.headroom_percentage
        if 0 <= headroom < cfg.at_risk_headroom:
            return UnifiedDisplayStatus.AT_RISK, None, True
        return UnifiedDisplayStatus.COMPLIANT, None, True

    if covenant.status == CovenantStatus.WAIVED:
        if active_waiver is not None and active_waiver.expiration_date is not None:
            days = days_between(now, active_waiver.expiration_date)
            if days <= cfg.expiring_soon_days:
                return UnifiedDisplayStatus.WAIVED_EXPIRING_SOON, days, True
        return UnifiedDisplayStatus.WAIVED_PROTECTED, None, True

    if covenant.status == CovenantStatus.BREACHED:
        if has_pending:
            return UnifiedDisplayStatus.BREACHED_WAIVER_PENDING, None, True
        if recently_rejected is not None:
            return UnifiedDisplayStatus.BREACHED_WAIVER_REJECTED, None, True
        return UnifiedDisplayStatus.BREACHED_NO_WAIVER, None, True

    return UnifiedDisplayStatus.COMPLIANT, None, False


def derive_unified_state(
    covenant: Covenant,
    related_waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> UnifiedCovenantState:
    """Combine a covenant's own status with its waiver context."""
    cfg = config or EngineConfig()
    now = resolve_as_of(as_of)

    active_waiver = find_active_waiver(related_waivers, now)
    has_pending = any(w.status == WaiverStatus.PENDING for w in related_waivers)
    recently_rejected = find_recently_rejected_waiver(
        related_waivers, now, cfg.rejection_lookback_days
    )

    display_status, days_to_expiry, known = _select_display_status(
        covenant, active_waiver, has_pending, recently_rejected, now, cfg
    )
    presentation = STATUS_PRESENTATION[display_status] if known else UNKNOWN_STATUS_PRESENTATION
    description = presentation.description
    if days_to_expiry is not None:
        description = description.format(days=days_to_expiry)

    state = UnifiedCovenantState(
        base_status=covenant.status,
        has_active_waiver=active_waiver is not None,
        has_pending_waiver=has_pending,
        display_status=display_status,
        status_color=presentation.color,
        status_icon=presentation.icon,
        status_description=description,
        recommended_action=presentation.recommended_action,
    )
    logger.debug(
        "unified_state_derived",
        covenant_id=covenant.id,
        base_status=covenant.status.value,
        display_status=display_status.value,
        waivers=len(related_waivers),
    )
    return state


# ── Active Waiver Projection ──────────────────────────────────────────

def derive_compliance_trend(
    test_points: Sequence[TestPoint],
    config: Optional[EngineConfig] = None,
) -> ComplianceTrend:
    """Compare the two most recent headroom readings (by date)."""
    cfg = config or EngineConfig()
    if len(test_points) < 2:
        return ComplianceTrend.STABLE

    ordered = sorted(test_points, key=lambda p: p.date)
    recent = ordered[-1].headroom_percentage
    previous = ordered[-2].headroom_percentage

    if recent > previous + cfg.trend_threshold:
        return ComplianceTrend.IMPROVING
    if recent < previous - cfg.trend_threshold:
        return ComplianceTrend.DETERIORATING
    return ComplianceTrend.STABLE


def derive_expiration_risk(
    days_remaining: int,
    headroom: float,
    trend: ComplianceTrend,
    config: Optional[EngineConfig] = None,
) -> ExpirationRisk:
    """Risk of the covenant being out of compliance when protection lapses.

    Bands overlap across the two day windows and are evaluated in order.
    """
    cfg = config or EngineConfig()
    in_critical_window = days_remaining <= cfg.critical_window_days
    in_warning_window = days_remaining <= cfg.warning_window_days

    if in_critical_window and headroom < 0 and trend != ComplianceTrend.IMPROVING:
        return ExpirationRisk.CRITICAL
    if (in_critical_window and headroom < 0) or (in_warning_window and headroom < -10):
        return ExpirationRisk.HIGH
    if (in_critical_window and 0 <= headroom < 10) or (in_warning_window and -10 <= headroom < 0):
        return ExpirationRisk.MEDIUM
    return ExpirationRisk.LOW


def waiver_effective_date(waiver: Waiver) -> datetime:
    return waiver.effective_date or waiver.decision_date or waiver.requested_date


def derive_active_waiver_state(
    covenant: Covenant,
    waiver: Waiver,
    recent_tests: Optional[Sequence[TestPoint]] = None,
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> ActiveWaiverState:
    """Project the waived period: elapsed/remaining days, trend and expiry risk."""
    cfg = config or EngineConfig()
    now = resolve_as_of(as_of)

    effective = waiver_effective_date(waiver)
    expiration = waiver.expiration_date or effective + cfg.default_waiver_days * ONE_DAY

    total_days = days_between(effective, expiration)
    days_elapsed = days_between(effective, now)
    days_remaining = max(0, total_days - days_elapsed)
    if total_days > 0:
        progress = min(100.0, max(0.0, days_elapsed / total_days * 100))
    else:
        progress = 100.0

    tests = covenant.test_history if recent_tests is None else recent_tests
    trend = derive_compliance_trend(tests, cfg)
    headroom = covenant.latest_test.headroom_percentage

    return ActiveWaiverState(
        waiver=waiver,
        state_entered_at=effective,
        state_expires_at=expiration,
        days_remaining=days_remaining,
        progress_percentage=progress,
        compliance_trend=trend,
        projected_compliance_at_expiry=headroom >= 0 or trend == ComplianceTrend.IMPROVING,
        expiration_risk=derive_expiration_risk(days_remaining, headroom, trend, cfg),
    )


# ── Waiver State History ──────────────────────────────────────────────

def build_waiver_state_history(waivers: Sequence[Waiver]) -> List[WaiverStateEntry]:
    """One entry per waiver that reached the waived state or a decision.

    Only expiration records an exit reason; rejected waivers keep a null
    exit reason.
    """
    history = []
    for w in waivers:
        if w.status in (WaiverStatus.PENDING, WaiverStatus.WITHDRAWN):
            continue
        expired = w.status == WaiverStatus.EXPIRED
        history.append(WaiverStateEntry(
            waiver_id=w.id,
            from_status=CovenantStatus.BREACHED,
            entered_at=waiver_effective_date(w),
            exited_at=w.expiration_date if expired else None,
            exit_reason=WaiverExitReason.EXPIRED if expired else None,
            status_after_waiver=CovenantStatus.ACTIVE if expired else None,
            waiver_snapshot=w,
        ))
    return history


# ── Enrichment ────────────────────────────────────────────────────────

def enrich_covenant_with_waiver_state(
    covenant: Covenant,
    all_waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> CovenantWithWaiverState:
    cfg = config or EngineConfig()
    now = resolve_as_of(as_of)

    related = get_covenant_waivers(covenant.id, all_waivers)
    unified = derive_unified_state(covenant, related, now, cfg)

    active_state = None
    if covenant.status == CovenantStatus.WAIVED:
        active_waiver = find_active_waiver(related, now)
        if active_waiver is not None:
            active_state = derive_active_waiver_state(
                covenant, active_waiver, covenant.test_history, now, cfg
            )

    return CovenantWithWaiverState(
        covenant=covenant,
        unified_state=unified,
        active_waiver_state=active_state,
        waiver_state_history=build_waiver_state_history(related),
    )


def enrich_portfolio(
    covenants: Sequence[Covenant],
    all_waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> List[CovenantWithWaiverState]:
    """Enrich every covenant against one snapshot of the waiver set and clock."""
    now = resolve_as_of(as_of)
    enriched = [enrich_covenant_with_waiver_state(c, all_waivers, now, config) for c in covenants]
    logger.info("portfolio_enriched", covenants=len(enriched), waivers=len(all_waivers))
    return enriched

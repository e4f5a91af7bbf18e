"""
Covenant lifecycle state history.

Each recorded test places a covenant in a lifecycle state (healthy, at_risk,
breach or waived). Replaying the tests in date order yields the transitions
between states, with the trigger and a readable reason for each, and summary
statistics such as time spent per state. Across a portfolio the histories
give the share of at-risk covenants that went on to breach.
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import structlog

from covenant_engine.config import EngineConfig
from covenant_engine.models import (
    AtRiskBreachRate, Covenant, CovenantStateHistory, LifecycleState as S,
    StateStatistics, StateTransition, TransitionTrigger as Trigger, Waiver,
    WaiverPeriod, WaiverStatus,
)
from covenant_engine.utils import ONE_DAY, resolve_as_of
from covenant_engine.waiver_state import get_covenant_waivers, waiver_effective_date

logger = structlog.get_logger(__name__)

DAYS_PER_QUARTER = 90


# ── State Derivation ──────────────────────────────────────────────────

def determine_covenant_state(
    passed: bool,
    headroom: float,
    is_waived: bool,
    config: Optional[EngineConfig] = None,
) -> S:
    """Lifecycle state of a single test. `resolved` is never derived from a test."""
    cfg = config or EngineConfig()
    if is_waived:
        return S.WAIVED
    if not passed:
        return S.BREACH
    if headroom > cfg.healthy_headroom:
        return S.HEALTHY
    if headroom >= 0:
        return S.AT_RISK
    # Recorded as passing with negative headroom
    return S.BREACH


def determine_transition_trigger(from_state: S, to_state: S, passed: bool) -> Trigger:
    if to_state == S.WAIVED:
        return Trigger.WAIVER_GRANTED
    if from_state == S.WAIVED:
        return Trigger.WAIVER_EXPIRED
    if not passed and from_state != S.BREACH:
        return Trigger.TEST_FAILURE
    if passed and from_state == S.BREACH:
        return Trigger.TEST_SUCCESS
    if from_state == S.HEALTHY and to_state == S.AT_RISK:
        return Trigger.HEADROOM_DETERIORATION
    if from_state == S.AT_RISK and to_state == S.HEALTHY:
        return Trigger.HEADROOM_IMPROVEMENT
    return Trigger.TEST_SUCCESS if passed else Trigger.TEST_FAILURE


def transition_reason(
    from_state: S,
    to_state: S,
    trigger: Trigger,
    headroom: float,
    ratio: Optional[float],
    threshold: float,
) -> str:
    r = f"{ratio:.2f}" if ratio is not None else "n/a"
    t = f"{threshold:.2f}"
    h = f"{headroom:.1f}"

    if trigger == Trigger.HEADROOM_DETERIORATION:
        return (f"Headroom declined to {h}%, moving from healthy to at-risk status. "
                f"Ratio: {r}x vs threshold {t}x.")
    if trigger == Trigger.HEADROOM_IMPROVEMENT:
        return (f"Headroom improved to {h}%, moving from at-risk to healthy status. "
                f"Ratio: {r}x vs threshold {t}x.")
    if trigger == Trigger.TEST_FAILURE:
        return f"Test failed with ratio {r}x below threshold {t}x ({h}% headroom). Covenant breached."
    if trigger == Trigger.TEST_SUCCESS:
        return f"Test passed with ratio {r}x meeting threshold {t}x ({h}% headroom). Covenant resolved."
    if trigger == Trigger.WAIVER_GRANTED:
        return f"Waiver granted for breach. Ratio: {r}x vs threshold {t}x."
    if trigger == Trigger.WAIVER_EXPIRED:
        return f"Waiver period expired. Current ratio: {r}x vs threshold {t}x ({h}% headroom)."
    return (f"State manually changed from {from_state.value} to {to_state.value}. "
            f"Ratio: {r}x vs threshold {t}x.")


def waiver_periods(waivers: Sequence[Waiver]) -> List[WaiverPeriod]:
    """Windows of approved or expired waivers that carry an expiration date."""
    return [
        WaiverPeriod(start=waiver_effective_date(w), end=w.expiration_date)
        for w in waivers
        if w.status in (WaiverStatus.APPROVED, WaiverStatus.EXPIRED) and w.expiration_date is not None
    ]


# ── Statistics ────────────────────────────────────────────────────────

def _per_state(value) -> Dict[S, float]:
    return {state: value for state in S}


def calculate_state_statistics(
    transitions: Sequence[StateTransition],
    as_of: Optional[datetime] = None,
) -> StateStatistics:
    """Counts and durations per state. The latest state runs until `as_of`."""
    if not transitions:
        raise ValueError("Cannot calculate statistics from an empty transition history")
    now = resolve_as_of(as_of)

    counts = _per_state(0)
    total_days = _per_state(0.0)
    for i, t in enumerate(transitions):
        counts[t.to_state] += 1
        end = transitions[i + 1].timestamp if i + 1 < len(transitions) else now
        total_days[t.to_state] += (end - t.timestamp) / ONE_DAY

    first, last = transitions[0], transitions[-1]
    return StateStatistics(
        total_transitions=len(transitions),
        state_counts=counts,
        total_days_by_state=total_days,
        average_duration_by_state={
            state: total_days[state] / counts[state] if counts[state] else 0.0 for state in S
        },
        breach_count=counts[S.BREACH],
        waiver_count=counts[S.WAIVED],
        resolution_count=counts[S.RESOLVED],
        first_transition_date=first.timestamp,
        last_transition_date=last.timestamp,
        total_monitoring_days=(last.timestamp - first.timestamp) / ONE_DAY,
    )


# ── History Builder ───────────────────────────────────────────────────

def build_state_history(
    covenant: Covenant,
    periods: Optional[Sequence[WaiverPeriod]] = None,
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> CovenantStateHistory:
    """
    Replay a covenant's tests into lifecycle transitions.

    The first test records the initial state; later tests add a transition
    only when the state changes. Tests dated inside a waiver period
    (inclusive) count as waived.

    Raises:
        ValueError: if the covenant has no test history
    """
    if not covenant.test_history:
        raise ValueError(f"Cannot build state history for {covenant.id}: empty test history")
    now = resolve_as_of(as_of)
    periods = periods or []
    tests = sorted(covenant.test_history, key=lambda p: p.date)
    threshold = covenant.current_threshold

    transitions: List[StateTransition] = []
    previous: Optional[S] = None
    for index, test in enumerate(tests):
        waived = any(p.start <= test.date <= p.end for p in periods)
        state = determine_covenant_state(test.passed, test.headroom_percentage, waived, config)

        if previous is None:
            transitions.append(StateTransition(
                id=f"{covenant.id}-transition-0",
                covenant_id=covenant.id,
                from_state=state,
                to_state=state,
                trigger=Trigger.TEST_SUCCESS,
                timestamp=test.date,
                test_point=test,
                headroom_percentage=test.headroom_percentage,
                calculated_ratio=test.calculated_ratio,
                threshold_value=threshold,
                reason=f"Initial state recorded as {state.value} with {test.headroom_percentage:.1f}% headroom.",
            ))
        elif state != previous:
            trigger = determine_transition_trigger(previous, state, test.passed)
            transitions.append(StateTransition(
                id=f"{covenant.id}-transition-{index}",
                covenant_id=covenant.id,
                from_state=previous,
                to_state=state,
                trigger=trigger,
                timestamp=test.date,
                test_point=test,
                headroom_percentage=test.headroom_percentage,
                calculated_ratio=test.calculated_ratio,
                threshold_value=threshold,
                reason=transition_reason(
                    previous, state, trigger, test.headroom_percentage, test.calculated_ratio, threshold,
                ),
                previous_transition_id=transitions[-1].id,
            ))
        previous = state

    current = transitions[-1]
    logger.debug(
        "state_history_built",
        covenant_id=covenant.id,
        tests=len(tests),
        transitions=len(transitions),
        current_state=current.to_state.value,
    )
    return CovenantStateHistory(
        covenant_id=covenant.id,
        current_state=current.to_state,
        current_state_since=current.timestamp,
        days_in_current_state=(now - current.timestamp) / ONE_DAY,
        transitions=transitions,
        statistics=calculate_state_statistics(transitions, now),
    )


def build_portfolio_state_histories(
    covenants: Sequence[Covenant],
    all_waivers: Sequence[Waiver],
    as_of: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, CovenantStateHistory]:
    """State histories keyed by covenant id; covenants without tests are skipped."""
    now = resolve_as_of(as_of)
    return {
        c.id: build_state_history(
            c, waiver_periods(get_covenant_waivers(c.id, all_waivers)), now, config,
        )
        for c in covenants
        if c.test_history
    }


# ── Portfolio Analytics ───────────────────────────────────────────────

def calculate_at_risk_breach_rate(
    histories: Sequence[CovenantStateHistory],
    quarters: int,
) -> AtRiskBreachRate:
    """Share of entries into at_risk followed by a breach within `quarters` quarters."""
    target_days = quarters * DAYS_PER_QUARTER
    total_at_risk = 0
    days_to_breach: List[float] = []

    for history in histories:
        for i, t in enumerate(history.transitions):
            if t.to_state != S.AT_RISK:
                continue
            total_at_risk += 1
            breach = next((later for later in history.transitions[i + 1:] if later.to_state == S.BREACH), None)
            if breach is None:
                continue
            days = (breach.timestamp - t.timestamp) / ONE_DAY
            if days <= target_days:
                days_to_breach.append(days)

    return AtRiskBreachRate(
        total_at_risk=total_at_risk,
        breached_within_period=len(days_to_breach),
        breach_rate_percentage=len(days_to_breach) / total_at_risk * 100 if total_at_risk else 0.0,
        average_days_to_breach=sum(days_to_breach) / len(days_to_breach) if days_to_breach else 0.0,
    )

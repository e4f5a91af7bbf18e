"""
Unified covenant / waiver timeline.

Merges the covenant's test history and the lifecycle of its waivers into a
single recency-first event log. The most recent event is flagged as current.
"""
from typing import Dict, List, Optional, Sequence

import pandas as pd
import structlog

from covenant_engine.config import EngineConfig
from covenant_engine.models import (
    Covenant, CovenantStatus, EventTestResult, TimelineEvent, TimelineEventType,
    Waiver, WaiverStatus,
)
from covenant_engine.style import TIMELINE_EVENT_PRESENTATION

logger = structlog.get_logger(__name__)


# ── Event Sources ─────────────────────────────────────────────────────

def _test_events(covenant: Covenant, cfg: EngineConfig) -> List[TimelineEvent]:
    events: List[TimelineEvent] = []
    history = covenant.test_history
    if not history:
        return events

    events.append(TimelineEvent(
        id=f"{covenant.id}-created",
        covenant_id=covenant.id,
        timestamp=history[0].date,
        event_type=TimelineEventType.COVENANT_CREATED,
        state_after_event=CovenantStatus.ACTIVE,
        title="Covenant Established",
        description=f"{covenant.name or covenant.id} covenant tracking began",
    ))

    previous_headroom: Optional[float] = None
    for index, test in enumerate(history):
        passed = test.passed
        ratio = f"Ratio: {test.calculated_ratio:.2f}x | " if test.calculated_ratio is not None else ""
        events.append(TimelineEvent(
            id=f"{covenant.id}-test-{index}",
            covenant_id=covenant.id,
            timestamp=test.date,
            event_type=TimelineEventType.TEST_PASSED if passed else TimelineEventType.TEST_FAILED,
            state_after_event=CovenantStatus.ACTIVE if passed else CovenantStatus.BREACHED,
            title="Covenant Test Passed" if passed else "Covenant Test Failed",
            description=f"{ratio}Headroom: {test.headroom_percentage:.1f}%",
            test_result=EventTestResult(
                calculated_ratio=test.calculated_ratio,
                threshold=covenant.current_threshold,
                headroom_percentage=test.headroom_percentage,
                passed=passed,
            ),
        ))

        if previous_headroom is not None:
            change = test.headroom_percentage - previous_headroom
            if abs(change) >= cfg.headroom_change_threshold:
                improved = change > 0
                events.append(TimelineEvent(
                    id=f"{covenant.id}-headroom-{index}",
                    covenant_id=covenant.id,
                    timestamp=test.date,
                    event_type=(TimelineEventType.HEADROOM_IMPROVED if improved
                                else TimelineEventType.HEADROOM_DETERIORATED),
                    state_after_event=covenant.status,
                    title="Headroom Improved" if improved else "Headroom Deteriorated",
                    description=f"Headroom changed by {change:+.1f}%",
                ))
        previous_headroom = test.headroom_percentage

    return events


def _waiver_events(covenant: Covenant, waiver: Waiver) -> List[TimelineEvent]:
    events = [TimelineEvent(
        id=f"{waiver.id}-requested",
        covenant_id=covenant.id,
        timestamp=waiver.requested_date,
        event_type=TimelineEventType.WAIVER_REQUESTED,
        state_after_event=covenant.status,
        title="Waiver Requested",
        description=waiver.request_reason or "Waiver requested",
        waiver_id=waiver.id,
        actor=waiver.requested_by,
    )]

    if waiver.decision_date is not None:
        if waiver.status == WaiverStatus.APPROVED:
            events.append(TimelineEvent(
                id=f"{waiver.id}-approved",
                covenant_id=covenant.id,
                timestamp=waiver.decision_date,
                event_type=TimelineEventType.WAIVER_APPROVED,
                state_after_event=CovenantStatus.WAIVED,
                title="Waiver Approved",
                description=waiver.waiver_terms or "Waiver granted",
                waiver_id=waiver.id,
                actor=waiver.decision_by,
            ))
        elif waiver.status == WaiverStatus.REJECTED:
            events.append(TimelineEvent(
                id=f"{waiver.id}-rejected",
                covenant_id=covenant.id,
                timestamp=waiver.decision_date,
                event_type=TimelineEventType.WAIVER_REJECTED,
                state_after_event=CovenantStatus.BREACHED,
                title="Waiver Rejected",
                description=waiver.rejection_reason or "Waiver request denied",
                waiver_id=waiver.id,
                actor=waiver.decision_by,
            ))

    if waiver.status == WaiverStatus.EXPIRED and waiver.expiration_date is not None:
        events.append(TimelineEvent(
            id=f"{waiver.id}-expired",
            covenant_id=covenant.id,
            timestamp=waiver.expiration_date,
            event_type=TimelineEventType.WAIVER_EXPIRED,
            state_after_event=CovenantStatus.ACTIVE,
            title="Waiver Expired",
            description="Waiver period ended, covenant monitoring resumed",
            waiver_id=waiver.id,
        ))

    return events


# ── Timeline Builder ──────────────────────────────────────────────────

def build_unified_timeline(
    covenant: Covenant,
    waivers: Sequence[Waiver],
    config: Optional[EngineConfig] = None,
) -> List[TimelineEvent]:
    """Build the recency-first event log for one covenant.

    Test-derived events are generated before waiver-derived events; the sort
    is stable, so events sharing a timestamp keep that order. Exactly the
    first event (if any) is marked current.
    """
    cfg = config or EngineConfig()

    events = _test_events(covenant, cfg)
    for waiver in waivers:
        events.extend(_waiver_events(covenant, waiver))

    events = sorted(events, key=lambda e: e.timestamp, reverse=True)
    if events:
        events[0] = events[0].model_copy(update={"is_current": True})

    logger.debug(
        "timeline_built",
        covenant_id=covenant.id,
        events=len(events),
        waivers=len(waivers),
    )
    return events


def build_portfolio_timelines(
    covenants: Sequence[Covenant],
    all_waivers: Sequence[Waiver],
    config: Optional[EngineConfig] = None,
) -> Dict[str, List[TimelineEvent]]:
    """Timelines keyed by covenant id; each covenant only sees its own waivers."""
    return {
        c.id: build_unified_timeline(c, [w for w in all_waivers if w.covenant_id == c.id], config)
        for c in covenants
    }


def timeline_to_frame(events: Sequence[TimelineEvent]) -> pd.DataFrame:
    """Tabular view of a timeline for display and export."""
    if not events:
        return pd.DataFrame()

    rows = []
    for e in events:
        rows.append({
            "Timestamp": e.timestamp,
            "Covenant ID": e.covenant_id,
            "Event": TIMELINE_EVENT_PRESENTATION[e.event_type].label,
            "Title": e.title,
            "Description": e.description,
            "State After": e.state_after_event.value,
            "Waiver ID": e.waiver_id or "",
            "Actor": e.actor or "",
            "Current": e.is_current,
        })
    return pd.DataFrame(rows)

"""
Presentation metadata for covenant compliance views.

Color classes, icons and labels attached to display statuses, timeline
events and attention levels. Lookup tables only; no derivation logic.
"""
from typing import Dict, NamedTuple, Optional

from covenant_engine.models import TimelineEventType, UnifiedDisplayStatus


class StatusPresentation(NamedTuple):
    color: str
    icon: str  # check | clock | alert | shield | x
    description: str
    recommended_action: Optional[str]


class EventPresentation(NamedTuple):
    color: str
    bg_color: str
    border_color: str
    icon: str
    label: str


# ── Unified Display Status ────────────────────────────────────────────

_AMBER = "bg-amber-100 text-amber-700 border-amber-200"
_GREEN = "bg-green-100 text-green-700 border-green-200"
_PURPLE = "bg-purple-100 text-purple-700 border-purple-200"
_RED = "bg-red-100 text-red-700 border-red-200"
_ZINC = "bg-zinc-100 text-zinc-700 border-zinc-200"

STATUS_PRESENTATION: Dict[UnifiedDisplayStatus, StatusPresentation] = {
    UnifiedDisplayStatus.AT_RISK: StatusPresentation(
        _AMBER, "alert", "Passing with low headroom",
        "Monitor closely and consider proactive waiver request",
    ),
    UnifiedDisplayStatus.COMPLIANT: StatusPresentation(
        _GREEN, "check", "In compliance with healthy headroom", None,
    ),
    UnifiedDisplayStatus.WAIVED_EXPIRING_SOON: StatusPresentation(
        _AMBER, "clock", "Waiver expires in {days} days",
        "Review compliance trajectory and consider waiver extension",
    ),
    UnifiedDisplayStatus.WAIVED_PROTECTED: StatusPresentation(
        _PURPLE, "shield", "Protected by active waiver", None,
    ),
    UnifiedDisplayStatus.PENDING_WAIVER: StatusPresentation(
        _AMBER, "clock", "Waiver request pending", "Follow up on waiver approval status",
    ),
    UnifiedDisplayStatus.BREACHED_WAIVER_PENDING: StatusPresentation(
        _AMBER, "clock", "Breached with waiver request pending",
        "Follow up on waiver approval status",
    ),
    UnifiedDisplayStatus.BREACHED_WAIVER_REJECTED: StatusPresentation(
        _RED, "x", "Breached - waiver request was rejected",
        "Engage workout team or pursue restructuring",
    ),
    UnifiedDisplayStatus.BREACHED_NO_WAIVER: StatusPresentation(
        _RED, "alert", "Covenant breached without waiver protection",
        "Submit waiver request or pursue cure options",
    ),
}

# Covenant status outside the known set
UNKNOWN_STATUS_PRESENTATION = StatusPresentation(_ZINC, "check", "Status unknown", None)


# ── Timeline Events ───────────────────────────────────────────────────

TIMELINE_EVENT_PRESENTATION: Dict[TimelineEventType, EventPresentation] = {
    TimelineEventType.COVENANT_CREATED: EventPresentation(
        "text-blue-700", "bg-blue-100", "border-blue-200", "file", "Covenant Created"),
    TimelineEventType.TEST_PASSED: EventPresentation(
        "text-green-700", "bg-green-100", "border-green-200", "check", "Test Passed"),
    TimelineEventType.TEST_FAILED: EventPresentation(
        "text-red-700", "bg-red-100", "border-red-200", "x", "Test Failed"),
    TimelineEventType.WAIVER_REQUESTED: EventPresentation(
        "text-amber-700", "bg-amber-100", "border-amber-200", "clock", "Waiver Requested"),
    TimelineEventType.WAIVER_APPROVED: EventPresentation(
        "text-purple-700", "bg-purple-100", "border-purple-200", "shield", "Waiver Approved"),
    TimelineEventType.WAIVER_REJECTED: EventPresentation(
        "text-red-700", "bg-red-100", "border-red-200", "x", "Waiver Rejected"),
    TimelineEventType.WAIVER_EXPIRED: EventPresentation(
        "text-zinc-700", "bg-zinc-100", "border-zinc-200", "clock", "Waiver Expired"),
    TimelineEventType.WAIVER_TERMINATED: EventPresentation(
        "text-amber-700", "bg-amber-100", "border-amber-200", "x", "Waiver Terminated"),
    TimelineEventType.BREACH_DECLARED: EventPresentation(
        "text-red-700", "bg-red-100", "border-red-200", "alert", "Breach Declared"),
    TimelineEventType.BREACH_CURED: EventPresentation(
        "text-green-700", "bg-green-100", "border-green-200", "check", "Breach Cured"),
    TimelineEventType.THRESHOLD_MODIFIED: EventPresentation(
        "text-blue-700", "bg-blue-100", "border-blue-200", "edit", "Threshold Modified"),
    TimelineEventType.HEADROOM_IMPROVED: EventPresentation(
        "text-green-700", "bg-green-100", "border-green-200", "trending-up", "Headroom Improved"),
    TimelineEventType.HEADROOM_DETERIORATED: EventPresentation(
        "text-amber-700", "bg-amber-100", "border-amber-200", "trending-down", "Headroom Deteriorated"),
}


# ── Attention Levels ──────────────────────────────────────────────────

ATTENTION_LEVEL_COLORS = {
    5: "bg-red-100 text-red-700 border-red-300",
    4: "bg-orange-100 text-orange-700 border-orange-300",
    3: "bg-amber-100 text-amber-700 border-amber-300",
    2: "bg-blue-100 text-blue-700 border-blue-300",
    1: "bg-green-100 text-green-700 border-green-300",
}

ATTENTION_LEVEL_ICONS = {
    5: "AlertTriangle",
    4: "AlertCircle",
    3: "Info",
    2: "Eye",
    1: "CheckCircle",
}


def entropy_color_class(entropy: float) -> str:
    """Text color band for an entropy value (red = low safety)."""
    if entropy < 0.2:
        return "text-red-600"
    if entropy < 0.4:
        return "text-orange-600"
    if entropy < 0.6:
        return "text-amber-600"
    if entropy < 0.8:
        return "text-blue-600"
    return "text-green-600"


def attention_level_color_class(level: int) -> str:
    return ATTENTION_LEVEL_COLORS.get(level, "bg-zinc-100 text-zinc-700 border-zinc-300")


def attention_level_icon(level: int) -> str:
    return ATTENTION_LEVEL_ICONS.get(level, "HelpCircle")

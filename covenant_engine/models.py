from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator

from covenant_engine.utils import ensure_utc


class _ValueModel(BaseModel):
    """
    Immutable value structure. Recomputed on demand, never mutated.

    Only datetime fields declared directly on a model are normalized to UTC;
    bare datetimes nested in list or dict fields are left as given (nested
    models normalize their own fields).
    """
    model_config = ConfigDict(frozen=True)

    @field_validator("*", mode="after")
    @classmethod
    def _timestamps_to_utc(cls, v):
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


# ── Status Enumerations ───────────────────────────────────────────────

class CovenantStatus(str, Enum):
    ACTIVE = "active"
    WAIVED = "waived"
    BREACHED = "breached"


class WaiverStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


class CovenantTestOutcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class UnifiedDisplayStatus(str, Enum):
    COMPLIANT = "compliant"
    WAIVED_PROTECTED = "waived_protected"
    WAIVED_EXPIRING_SOON = "waived_expiring_soon"
    PENDING_WAIVER = "pending_waiver"
    AT_RISK = "at_risk"
    BREACHED_WAIVER_PENDING = "breached_waiver_pending"
    BREACHED_NO_WAIVER = "breached_no_waiver"
    BREACHED_WAIVER_REJECTED = "breached_waiver_rejected"


class ComplianceTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"


class ExpirationRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WaiverExitReason(str, Enum):
    EXPIRED = "expired"
    TERMINATED_EARLY = "terminated_early"
    SUPERSEDED = "superseded"
    COVENANT_CURED = "covenant_cured"
    FACILITY_CLOSED = "facility_closed"


class TimelineEventType(str, Enum):
    COVENANT_CREATED = "covenant_created"
    TEST_PASSED = "test_passed"
    TEST_FAILED = "test_failed"
    WAIVER_REQUESTED = "waiver_requested"
    WAIVER_APPROVED = "waiver_approved"
    WAIVER_REJECTED = "waiver_rejected"
    WAIVER_EXPIRED = "waiver_expired"
    WAIVER_TERMINATED = "waiver_terminated"
    BREACH_DECLARED = "breach_declared"
    BREACH_CURED = "breach_cured"
    THRESHOLD_MODIFIED = "threshold_modified"
    HEADROOM_IMPROVED = "headroom_improved"
    HEADROOM_DETERIORATED = "headroom_deteriorated"


# ── Source Records (read-only inputs) ─────────────────────────────────

class TestPoint(_ValueModel):
    """
    A single recorded covenant test. Headroom is the signed percentage
    margin to the breach threshold; negative means breached.
    """
    __test__ = False  # not a pytest test class

    date: datetime
    headroom_percentage: float
    calculated_ratio: Optional[float] = None
    test_result: Optional[CovenantTestOutcome] = Field(
        None, description="Recorded pass/fail; derived from headroom sign when absent"
    )

    @property
    def passed(self) -> bool:
        if self.test_result is not None:
            return self.test_result == CovenantTestOutcome.PASS
        return self.headroom_percentage >= 0


class TriggeringTest(_ValueModel):
    test_date: datetime
    calculated_ratio: Optional[float] = None
    threshold: Optional[float] = None
    headroom_percentage: float


class Waiver(_ValueModel):
    """
    Waiver record as owned by the approval workflow.

    Lifecycle: pending -> approved | rejected | withdrawn; approved -> expired.
    """
    id: str
    covenant_id: str
    status: WaiverStatus
    requested_date: datetime
    decision_date: Optional[datetime] = None
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    triggering_test: Optional[TriggeringTest] = None

    # Workflow metadata (timeline actors / descriptions)
    requested_by: Optional[str] = None
    decision_by: Optional[str] = None
    request_reason: Optional[str] = None
    waiver_terms: Optional[str] = None
    rejection_reason: Optional[str] = None


class Covenant(_ValueModel):
    """
    A financial covenant and its test history.

    `status` is the covenant's own record of truth. `test_history` is
    expected in ascending date order.
    """
    id: str
    name: str = ""
    status: CovenantStatus
    current_threshold: float
    latest_test: TestPoint
    test_history: List[TestPoint] = Field(default_factory=list)

    facility_id: Optional[str] = None
    borrower_name: Optional[str] = None


# ── Derived Views ─────────────────────────────────────────────────────

class EntropyMetrics(_ValueModel):
    entropy: float = Field(..., ge=0.0, le=1.0, description="1 = maximum safety, 0 = maximum risk")
    velocity: float = 0.0
    acceleration: float = 0.0
    information_content: float = Field(..., ge=0.0, le=1.0)
    attention_level: int = Field(..., ge=1, le=5)
    alert_priority: float = Field(..., ge=0.0, le=100.0)
    interpretation: str


class UnifiedCovenantState(_ValueModel):
    base_status: CovenantStatus
    has_active_waiver: bool
    has_pending_waiver: bool
    display_status: UnifiedDisplayStatus
    status_color: str
    status_icon: str
    status_description: str
    recommended_action: Optional[str] = None


class ActiveWaiverState(_ValueModel):
    """Payload of a covenant in `waived` status."""
    waiver: Waiver
    state_entered_at: datetime
    state_expires_at: datetime
    days_remaining: int
    progress_percentage: float
    compliance_trend: ComplianceTrend
    projected_compliance_at_expiry: bool
    expiration_risk: ExpirationRisk


class WaiverStateEntry(_ValueModel):
    waiver_id: str
    from_status: CovenantStatus
    to_status: CovenantStatus = CovenantStatus.WAIVED
    entered_at: datetime
    exited_at: Optional[datetime] = None
    exit_reason: Optional[WaiverExitReason] = None
    status_after_waiver: Optional[CovenantStatus] = None
    was_compliant_at_exit: Optional[bool] = None
    waiver_snapshot: Waiver


class CovenantWithWaiverState(_ValueModel):
    covenant: Covenant
    unified_state: UnifiedCovenantState
    active_waiver_state: Optional[ActiveWaiverState] = None
    waiver_state_history: List[WaiverStateEntry] = Field(default_factory=list)


class EventTestResult(_ValueModel):
    calculated_ratio: Optional[float] = None
    threshold: float
    headroom_percentage: float
    passed: bool


class TimelineEvent(_ValueModel):
    id: str
    covenant_id: str
    timestamp: datetime
    event_type: TimelineEventType
    state_after_event: CovenantStatus
    title: str
    description: str
    waiver_id: Optional[str] = None
    test_result: Optional[EventTestResult] = None
    actor: Optional[str] = None
    is_current: bool = False


class RankedCovenant(_ValueModel):
    """A covenant paired with the entropy metrics of its test history."""
    covenant: Covenant
    metrics: EntropyMetrics


class PortfolioEntropyHealth(_ValueModel):
    health_score: int
    avg_entropy: float
    avg_attention_level: float
    covenant_count: int = 0
    critical_count: int = 0


# ── Lifecycle State History ───────────────────────────────────────────

class LifecycleState(str, Enum):
    HEALTHY = "healthy"
    AT_RISK = "at_risk"
    BREACH = "breach"
    WAIVED = "waived"
    RESOLVED = "resolved"


class TransitionTrigger(str, Enum):
    HEADROOM_DETERIORATION = "headroom_deterioration"
    HEADROOM_IMPROVEMENT = "headroom_improvement"
    TEST_FAILURE = "test_failure"
    TEST_SUCCESS = "test_success"
    WAIVER_GRANTED = "waiver_granted"
    WAIVER_EXPIRED = "waiver_expired"
    MANUAL_OVERRIDE = "manual_override"


class WaiverPeriod(_ValueModel):
    """Inclusive window during which test results count as waived."""
    start: datetime
    end: datetime


class StateTransition(_ValueModel):
    id: str
    covenant_id: str
    from_state: LifecycleState
    to_state: LifecycleState
    trigger: TransitionTrigger
    timestamp: datetime
    test_point: TestPoint
    headroom_percentage: float
    calculated_ratio: Optional[float] = None
    threshold_value: float
    reason: str
    previous_transition_id: Optional[str] = None


class StateStatistics(_ValueModel):
    total_transitions: int = 0
    state_counts: Dict[LifecycleState, int]
    total_days_by_state: Dict[LifecycleState, float]
    average_duration_by_state: Dict[LifecycleState, float]
    breach_count: int = 0
    waiver_count: int = 0
    resolution_count: int = 0
    first_transition_date: Optional[datetime] = None
    last_transition_date: Optional[datetime] = None
    total_monitoring_days: float = 0.0


class CovenantStateHistory(_ValueModel):
    covenant_id: str
    current_state: LifecycleState
    current_state_since: datetime
    days_in_current_state: float
    transitions: List[StateTransition]
    statistics: StateStatistics


class AtRiskBreachRate(_ValueModel):
    total_at_risk: int
    breached_within_period: int
    breach_rate_percentage: float
    average_days_to_breach: float


# ── Validation ────────────────────────────────────────────────────────

class ValidationIssue(BaseModel):
    severity: str  # "HARD", "SOFT"
    message: str
    covenant_id: Optional[str] = None
    waiver_id: Optional[str] = None

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """
    Tunable thresholds for the risk-entropy and waiver-state derivations.

    Passed in by the caller; the engine never reads or writes settings files.
    """
    # Headroom -> entropy sigmoid
    sigmoid_steepness: float = Field(0.1, gt=0)
    sigmoid_inflection: float = 15.0  # % headroom where entropy == 0.5

    # Unified state
    at_risk_headroom: float = 15.0          # active + headroom in [0, this) -> at_risk
    expiring_soon_days: int = 30
    rejection_lookback_days: int = 30
    default_waiver_days: int = 90           # grace window when no expiration is recorded

    # Active waiver projection
    trend_threshold: float = 2.0            # headroom points between last two tests
    critical_window_days: int = 14
    warning_window_days: int = 30

    # Timeline
    headroom_change_threshold: float = 5.0

    # Lifecycle state history
    healthy_headroom: float = 20.0          # passing test above this -> healthy

    # Portfolio ranking
    velocity_epsilon: float = 0.001
    watchlist_min_level: int = Field(4, ge=1, le=5)

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest

from covenant_engine.models import (
    Covenant, CovenantStatus, TestPoint, Waiver, WaiverStatus,
)

AS_OF = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
QUARTER = timedelta(days=90)


@pytest.fixture
def as_of() -> datetime:
    """Pinned evaluation instant shared by every time-dependent test."""
    return AS_OF


@pytest.fixture
def make_covenant():
    """
    Factory for covenants with quarterly tests ending 30 days before AS_OF.
    `headrooms` are listed oldest first; the last one is the latest test.
    """
    def _make(
        headrooms: Sequence[float] = (25.0,),
        status: CovenantStatus = CovenantStatus.ACTIVE,
        covenant_id: str = "COV-1",
        name: str = "Senior Leverage",
        threshold: float = 4.0,
        ratios: Optional[Sequence[Optional[float]]] = None,
    ) -> Covenant:
        last_date = AS_OF - timedelta(days=30)
        first_date = last_date - QUARTER * (len(headrooms) - 1)
        points = [
            TestPoint(
                date=first_date + QUARTER * i,
                headroom_percentage=h,
                calculated_ratio=ratios[i] if ratios else None,
            )
            for i, h in enumerate(headrooms)
        ]
        return Covenant(
            id=covenant_id,
            name=name,
            status=status,
            current_threshold=threshold,
            latest_test=points[-1],
            test_history=points,
        )
    return _make


@pytest.fixture
def make_waiver():
    """Factory for waivers with dates expressed as day offsets from AS_OF."""
    def _make(
        status: WaiverStatus = WaiverStatus.APPROVED,
        waiver_id: str = "WVR-1",
        covenant_id: str = "COV-1",
        requested_days_ago: int = 40,
        decided_days_ago: Optional[int] = 35,
        effective_days_ago: Optional[int] = None,
        expires_in_days: Optional[int] = 60,
        **extra,
    ) -> Waiver:
        return Waiver(
            id=waiver_id,
            covenant_id=covenant_id,
            status=status,
            requested_date=AS_OF - timedelta(days=requested_days_ago),
            decision_date=(AS_OF - timedelta(days=decided_days_ago)
                           if decided_days_ago is not None else None),
            effective_date=(AS_OF - timedelta(days=effective_days_ago)
                            if effective_days_ago is not None else None),
            expiration_date=(AS_OF + timedelta(days=expires_in_days)
                             if expires_in_days is not None else None),
            **extra,
        )
    return _make

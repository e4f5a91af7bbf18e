from datetime import timedelta

from covenant_engine.models import Covenant, WaiverStatus
from covenant_engine.validation import (
    check_test_history_order,
    check_waiver_covenant_links,
    check_waiver_dates,
    run_all_checks,
)


class TestHistoryOrder:
    def test_ascending_history_is_clean(self, make_covenant):
        assert check_test_history_order(make_covenant([10.0, 12.0, 8.0])) == []

    def test_out_of_order_reported(self, make_covenant):
        base = make_covenant([10.0, 12.0, 8.0])
        shuffled = base.model_copy(update={"test_history": list(reversed(base.test_history))})
        issues = check_test_history_order(shuffled)
        assert len(issues) == 2
        assert all(i.severity == "HARD" for i in issues)
        assert issues[0].covenant_id == "COV-1"
        assert "index 1" in issues[0].message


class TestWaiverChecks:
    def test_orphan_waiver(self, make_covenant, make_waiver):
        issues = check_waiver_covenant_links([make_covenant()], [make_waiver(covenant_id="GHOST")])
        assert len(issues) == 1
        assert issues[0].severity == "HARD"
        assert issues[0].waiver_id == "WVR-1"

    def test_approved_without_expiration(self, make_waiver):
        issues = check_waiver_dates([make_waiver(expires_in_days=None)])
        assert [i.severity for i in issues] == ["SOFT"]
        assert "no expiration" in issues[0].message

    def test_expires_before_effective(self, make_waiver):
        issues = check_waiver_dates([make_waiver(effective_days_ago=-10, expires_in_days=5)])
        assert len(issues) == 1
        assert "expires before" in issues[0].message

    def test_expired_waiver_without_expiration_is_fine(self, make_waiver):
        assert check_waiver_dates([make_waiver(status=WaiverStatus.EXPIRED, expires_in_days=None)]) == []


class TestRunAllChecks:
    def test_clean_portfolio(self, make_covenant, make_waiver):
        assert run_all_checks([make_covenant()], [make_waiver()]) == []

    def test_collects_every_issue(self, make_covenant, make_waiver):
        base = make_covenant([10.0, 12.0])
        shuffled = Covenant(**{**base.model_dump(), "test_history": list(reversed(base.test_history))})
        waivers = [make_waiver(covenant_id="GHOST", expires_in_days=None)]
        issues = run_all_checks([shuffled], waivers)
        assert sorted(i.severity for i in issues) == ["HARD", "HARD", "SOFT"]

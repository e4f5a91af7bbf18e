from typing import List, Sequence
from covenant_engine.models import Covenant, Waiver, WaiverStatus, ValidationIssue


def check_test_history_order(covenant: Covenant) -> List[ValidationIssue]:
    """The engine assumes test history in ascending date order; it never re-sorts."""
    issues = []
    history = covenant.test_history
    for i in range(1, len(history)):
        if history[i].date < history[i - 1].date:
            issues.append(ValidationIssue(
                severity="HARD",
                message=f"Test history out of order at index {i}: "
                        f"{history[i].date:%Y-%m-%d} precedes {history[i - 1].date:%Y-%m-%d}",
                covenant_id=covenant.id,
            ))
    return issues


def check_waiver_covenant_links(
    covenants: Sequence[Covenant], waivers: Sequence[Waiver]
) -> List[ValidationIssue]:
    issues = []
    known_ids = {c.id for c in covenants}
    for w in waivers:
        if w.covenant_id not in known_ids:
            issues.append(ValidationIssue(
                severity="HARD",
                message=f"Waiver {w.id} references unknown covenant {w.covenant_id}",
                covenant_id=w.covenant_id,
                waiver_id=w.id,
            ))
    return issues


def check_waiver_dates(waivers: Sequence[Waiver]) -> List[ValidationIssue]:
    issues = []
    for w in waivers:
        start = w.effective_date or w.decision_date or w.requested_date
        if w.expiration_date is not None and w.expiration_date < start:
            issues.append(ValidationIssue(
                severity="SOFT",
                message=f"Waiver {w.id} expires before it takes effect",
                covenant_id=w.covenant_id,
                waiver_id=w.id,
            ))
        # Never selectable as the active waiver
        if w.status == WaiverStatus.APPROVED and w.expiration_date is None:
            issues.append(ValidationIssue(
                severity="SOFT",
                message=f"Approved waiver {w.id} has no expiration date",
                covenant_id=w.covenant_id,
                waiver_id=w.id,
            ))
    return issues


def run_all_checks(covenants: Sequence[Covenant], waivers: Sequence[Waiver]) -> List[ValidationIssue]:
    all_issues = []

    for covenant in covenants:
        all_issues.extend(check_test_history_order(covenant))
    all_issues.extend(check_waiver_covenant_links(covenants, waivers))
    all_issues.extend(check_waiver_dates(waivers))

    return all_issues

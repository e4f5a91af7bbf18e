"""
Excel export of covenant compliance state using openpyxl.
"""
import io
import math
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from covenant_engine.models import CovenantWithWaiverState, TimelineEvent
from covenant_engine.prioritization import calculate_portfolio_entropy_health, rank_by_priority
from covenant_engine.entropy import attention_level_label
from covenant_engine.timeline import timeline_to_frame
from covenant_engine.utils import ensure_utc, resolve_as_of


# ── Styling Constants ─────────────────────────────────────────────────

HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
TITLE_FONT = Font(bold=True, size=14)
SUBTITLE_FONT = Font(bold=True, size=12)
LABEL_FONT = Font(bold=True)
HEADER_ALIGNMENT = Alignment(horizontal="center")


def _write_header(ws, columns, row_num=1):
    """Write column names as a styled header row."""
    for col_idx, name in enumerate(columns, start=1):
        cell = ws.cell(row=row_num, column=col_idx, value=str(name))
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        ws.column_dimensions[cell.column_letter].width = max(len(str(name)) + 4, 14)


def _excel_value(value):
    # Excel has no timezone support: UTC timestamps are written naive
    if isinstance(value, datetime) and value.tzinfo is not None:
        return ensure_utc(value).replace(tzinfo=None)
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _write_df_to_sheet(ws, df, start_row=1):
    """Write a DataFrame below a styled header; returns the next free row."""
    _write_header(ws, df.columns, start_row)
    for r_idx, row in enumerate(df.itertuples(index=False), start=start_row + 1):
        for c_idx, value in enumerate(row, start=1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(value))
    return start_row + len(df) + 1


def _write_summary_lines(ws, lines, row_num):
    """Write (label, value) pairs as bold label rows; returns the next free row."""
    for label, value in lines:
        ws.cell(row=row_num, column=1, value=label).font = LABEL_FONT
        ws.cell(row=row_num, column=2, value=value)
        row_num += 1
    return row_num


def _priority_rows(enriched: Sequence[CovenantWithWaiverState]) -> List[Dict]:
    by_id = {e.covenant.id: e for e in enriched}
    rows = []
    for r in rank_by_priority([e.covenant for e in enriched]):
        state = by_id[r.covenant.id]
        active = state.active_waiver_state
        rows.append({
            "Covenant ID": r.covenant.id,
            "Name": r.covenant.name,
            "Status": state.unified_state.display_status.value,
            "Headroom %": round(r.covenant.latest_test.headroom_percentage, 2),
            "Entropy": round(r.metrics.entropy, 4),
            "Attention": attention_level_label(r.metrics.attention_level),
            "Priority": round(r.metrics.alert_priority, 1),
            "Waiver Days Left": active.days_remaining if active else None,
            "Expiration Risk": active.expiration_risk.value if active else "",
            "Recommended Action": state.unified_state.recommended_action or "",
        })
    return rows


# ── Report Generator ──────────────────────────────────────────────────

def generate_compliance_report(
    enriched: Sequence[CovenantWithWaiverState],
    timelines: Optional[Dict[str, List[TimelineEvent]]] = None,
    as_of: Optional[datetime] = None,
) -> bytes:
    """
    Generate Excel workbook with portfolio compliance state.

    Args:
        enriched: covenants enriched with their unified waiver state
        timelines: optional covenant_id -> timeline events
        as_of: evaluation instant printed on the summary sheet
    Returns:
        bytes of the Excel workbook
    """
    now = resolve_as_of(as_of)
    wb = Workbook()

    # Sheet 1: Summary
    ws = wb.active
    ws.title = "Summary"
    ws.cell(row=1, column=1, value="Covenant Compliance Report").font = TITLE_FONT
    ws.cell(row=2, column=1, value=f"As of: {now:%Y-%m-%d %H:%M} UTC")

    health = calculate_portfolio_entropy_health([e.covenant for e in enriched])
    row_num = _write_summary_lines(ws, [
        ("Portfolio Health Score", health.health_score),
        ("Covenants", len(enriched)),
        ("Avg Entropy", round(health.avg_entropy, 4)),
        ("Avg Attention Level", round(health.avg_attention_level, 2)),
        ("Critical Attention", health.critical_count),
    ], row_num=4)

    ws.cell(row=row_num + 1, column=1, value="Display Status").font = SUBTITLE_FONT
    counts: Dict[str, int] = {}
    for e in enriched:
        key = e.unified_state.display_status.value
        counts[key] = counts.get(key, 0) + 1
    _write_summary_lines(ws, sorted(counts.items()), row_num + 2)

    # Sheet 2: Priority
    rows = _priority_rows(enriched)
    if rows:
        ws2 = wb.create_sheet("Priority")
        _write_df_to_sheet(ws2, pd.DataFrame(rows))

    # Sheet 3: Timeline
    if timelines:
        frames = [timeline_to_frame(events) for events in timelines.values() if events]
        if frames:
            ws3 = wb.create_sheet("Timeline")
            _write_df_to_sheet(ws3, pd.concat(frames, ignore_index=True))

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()

"""Plain-text rendering of health states and maintenance outcomes."""

from __future__ import annotations
from typing import List

from keywarden_core.maintenance import KeyOutcome, MaintenanceReport, Outcome
from keywarden_core.policy import (
    DueForRotation,
    Expired,
    HealthState,
    LongExpiry,
    NoExpiry,
    OverdueForRotation,
)


def format_warning_lines(state: HealthState | None) -> List[str]:
    if isinstance(state, DueForRotation):
        return ["Due for rotation"]

    if isinstance(state, OverdueForRotation):
        days = state.days_until_expiry
        if days == 0:
            detail = "Expires today!"
        elif days == 1:
            detail = "Expires tomorrow!"
        else:
            detail = f"Expires in {days} days!"
        return ["Overdue for rotation", detail]

    if isinstance(state, NoExpiry):
        return ["No expiry date set"]

    if isinstance(state, LongExpiry):
        return ["Expiry date too far off"]

    if isinstance(state, Expired):
        days = state.days_since_expiry
        if days == 0:
            return ["Expired today"]
        if days == 1:
            return ["Expired yesterday"]
        if 2 <= days <= 9:
            return [f"Expired {days} days ago"]
        return ["Expired"]

    return []


def format_outcome(outcome: KeyOutcome) -> str:
    name = outcome.display_name or str(outcome.fingerprint)
    warning = ", ".join(format_warning_lines(outcome.state))

    if outcome.outcome is Outcome.FAILED:
        return f"{name}: failed: {outcome.reason}"
    if outcome.outcome is Outcome.ROTATED:
        return f"{name}: {warning}: extended until {outcome.new_expiry:%d %B %Y}"
    if outcome.outcome is Outcome.WOULD_ROTATE:
        return f"{name}: {warning}: would extend until {outcome.new_expiry:%d %B %Y}"
    if outcome.reason:
        return f"{name}: {warning}: {outcome.reason}"
    return f"{name}: good"


def format_summary(report: MaintenanceReport) -> str:
    if not report.outcomes:
        return "No keys are managed yet."
    if not report.ok:
        return f"{len(report.failures)} of {len(report.outcomes)} keys failed."
    if report.dry_run:
        return f"Dry run: {report.count(Outcome.WOULD_ROTATE)} keys would be rotated."
    return f"All {len(report.outcomes)} keys are good ({report.count(Outcome.ROTATED)} rotated)."

"""
keywarden_core.maintenance
--------------------------
The rotation loop: walk every managed key, classify it, rotate what needs it.

One broken key never stops the run. Keyring failures are caught per key and
reported as ``failed`` outcomes; store failures are not per key and propagate.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from keywarden_core.context import MaintenanceContext
from keywarden_core.fingerprint import Fingerprint
from keywarden_core.logger import get_logger
from keywarden_core.policy import HealthState, classify

log = get_logger("keywarden.maintenance")

ROTATE = "rotate"


class Outcome(str, Enum):
    NOOP = "no-op"
    WOULD_ROTATE = "would-rotate"
    ROTATED = "rotated"
    FAILED = "failed"


@dataclass
class KeyOutcome:
    fingerprint: Fingerprint
    outcome: Outcome
    state: Optional[HealthState] = None
    reason: str = ""
    new_expiry: Optional[datetime] = None
    display_name: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED


@dataclass
class MaintenanceReport:
    outcomes: List[KeyOutcome]
    dry_run: bool = False
    automatic_mode: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failures(self) -> List[KeyOutcome]:
        return [o for o in self.outcomes if o.failed]

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)


def maintain_key(
    ctx: MaintenanceContext,
    fingerprint: Fingerprint,
    now: datetime,
    dry_run: bool = False,
    automatic_mode: bool = False,
) -> KeyOutcome:
    try:
        listing = ctx.keyring.get_key(fingerprint)
    except Exception as e:
        log.exception(f"failed to load key {fingerprint.hex()}")
        return KeyOutcome(fingerprint, Outcome.FAILED, reason=f"couldn't load key: {e}")

    name = listing.display_name()
    last_rotated = ctx.store.get_last_action(ROTATE, fingerprint)
    state = classify(listing.expiry, listing.working_expiry, last_rotated, now, ctx.policy)

    if not state.requires_rotation:
        return KeyOutcome(fingerprint, Outcome.NOOP, state=state, display_name=name)

    if automatic_mode and not ctx.store.is_older_than(ROTATE, fingerprint, ctx.policy.min_rotation_interval, now):
        log.info(f"{fingerprint.hex()} is {state.name} but was rotated at {last_rotated}; skipping")
        return KeyOutcome(fingerprint, Outcome.NOOP, state=state, reason="rotated recently", display_name=name)

    new_expiry = ctx.policy.next_expiry(now)

    if dry_run:
        return KeyOutcome(fingerprint, Outcome.WOULD_ROTATE, state=state, new_expiry=new_expiry, display_name=name)

    try:
        ctx.keyring.rotate(fingerprint, new_expiry, password=ctx.password_for(fingerprint))
    except Exception as e:
        log.exception(f"failed to rotate {fingerprint.hex()}")
        return KeyOutcome(fingerprint, Outcome.FAILED, state=state, reason=str(e), display_name=name)

    ctx.store.record_action(ROTATE, fingerprint, now)
    log.info(f"rotated {fingerprint.hex()} ({state.name}), new expiry {new_expiry.isoformat()}")
    return KeyOutcome(fingerprint, Outcome.ROTATED, state=state, new_expiry=new_expiry, display_name=name)


def run_maintenance(ctx: MaintenanceContext, dry_run: bool = False, automatic_mode: bool = False) -> MaintenanceReport:
    now = ctx.now()
    fingerprints = ctx.store.list_imported()
    log.info(f"maintenance run: {len(fingerprints)} keys, dry_run={dry_run}, automatic={automatic_mode}")

    outcomes = [maintain_key(ctx, fpr, now, dry_run=dry_run, automatic_mode=automatic_mode) for fpr in fingerprints]
    report = MaintenanceReport(outcomes=outcomes, dry_run=dry_run, automatic_mode=automatic_mode)

    if report.ok:
        log.info(f"maintenance run finished: {report.count(Outcome.ROTATED)} rotated")
    else:
        log.warning(f"maintenance run finished with {len(report.failures)} failed keys")
    return report

"""
keywarden_core.scheduler
------------------------
Keeps a keywarden block in the user's crontab so automatic rotation runs
unattended. ``enable``/``disable`` are idempotent and report whether they
changed anything.
"""

from __future__ import annotations
from typing import Callable, Optional, Sequence, Tuple
import subprocess

from keywarden_core.errors import KeywardenError
from keywarden_core.logger import get_logger

log = get_logger("keywarden.scheduler")

CRON_MARKER = "# keywarden: rotate keys automatically"
# Hourly, after a random delay of up to an hour
CRON_LINE = "@hourly perl -e 'sleep int(rand(3600))' && keywarden key rotate automatic --cron-output"
CRON_BLOCK = f"{CRON_MARKER}\n{CRON_LINE}\n"

Runner = Callable[[Sequence[str], Optional[str]], Tuple[int, str, str]]


class SchedulerError(KeywardenError):
    pass


def _subprocess_runner(args: Sequence[str], text_to_send: Optional[str] = None) -> Tuple[int, str, str]:
    try:
        proc = subprocess.run(list(args), input=text_to_send, capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise SchedulerError(f"couldn't run {args[0]}: {e}") from e
    return proc.returncode, proc.stdout, proc.stderr


def has_keywarden_block(crontab: str) -> bool:
    return CRON_MARKER in crontab.splitlines()


def add_keywarden_block(crontab: str) -> str:
    if has_keywarden_block(crontab):
        return crontab
    if crontab and not crontab.endswith("\n"):
        crontab += "\n"
    return crontab + CRON_BLOCK


def remove_keywarden_block(crontab: str) -> str:
    kept = []
    skip_next = False
    for line in crontab.splitlines(keepends=True):
        if line.rstrip("\r\n") == CRON_MARKER:
            skip_next = True
            continue
        if skip_next:
            skip_next = False
            if line.rstrip("\r\n") == CRON_LINE:
                continue
        kept.append(line)
    return "".join(kept)


class Crontab:
    def __init__(self, runner: Runner = _subprocess_runner, binary: str = "crontab"):
        self.runner = runner
        self.binary = binary

    def read(self) -> str:
        code, stdout, stderr = self.runner([self.binary, "-l"], None)
        if code != 0:
            if "no crontab" in stderr.lower():
                return ""
            raise SchedulerError(f"crontab -l failed: {stderr.strip()}")
        return stdout

    def write(self, crontab: str) -> None:
        code, _, stderr = self.runner([self.binary, "-"], crontab)
        if code != 0:
            raise SchedulerError(f"writing crontab failed: {stderr.strip()}")

    def is_enabled(self) -> bool:
        return has_keywarden_block(self.read())

    def enable(self) -> bool:
        """Add the keywarden block. True if the crontab changed."""
        current = self.read()
        if has_keywarden_block(current):
            return False
        self.write(add_keywarden_block(current))
        log.info("added keywarden to crontab")
        return True

    def disable(self) -> bool:
        """Remove the keywarden block. True if the crontab changed."""
        current = self.read()
        if not has_keywarden_block(current):
            return False
        self.write(remove_keywarden_block(current))
        log.info("removed keywarden from crontab")
        return True

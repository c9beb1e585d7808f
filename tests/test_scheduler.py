import pytest

from keywarden_core.scheduler import (
    CRON_LINE,
    CRON_MARKER,
    Crontab,
    SchedulerError,
    add_keywarden_block,
    has_keywarden_block,
    remove_keywarden_block,
)

EXISTING = "MAILTO=jane@example.com\n0 3 * * * /usr/local/bin/backup\n"


class FakeCrontab:
    def __init__(self, content=None, read_error=""):
        self.content = content
        self.read_error = read_error
        self.writes = []

    def __call__(self, args, text_to_send):
        if args[1] == "-l":
            if self.read_error:
                return 1, "", self.read_error
            if self.content is None:
                return 1, "", "no crontab for jane\n"
            return 0, self.content, ""
        self.content = text_to_send
        self.writes.append(text_to_send)
        return 0, "", ""


def test_add_block_appends_after_existing_entries():
    updated = add_keywarden_block(EXISTING)
    assert updated == EXISTING + f"{CRON_MARKER}\n{CRON_LINE}\n"
    assert add_keywarden_block(updated) == updated


def test_add_block_fixes_missing_trailing_newline():
    assert add_keywarden_block("0 3 * * * backup").startswith("0 3 * * * backup\n# keywarden")


def test_remove_block_keeps_other_entries():
    assert remove_keywarden_block(add_keywarden_block(EXISTING)) == EXISTING
    assert remove_keywarden_block(EXISTING) == EXISTING


def test_remove_block_keeps_line_after_marker_if_not_ours():
    crontab = f"{CRON_MARKER}\n@daily something-else\n"
    assert remove_keywarden_block(crontab) == "@daily something-else\n"


def test_enable_on_empty_crontab():
    fake = FakeCrontab()
    crontab = Crontab(runner=fake)
    assert not crontab.is_enabled()
    assert crontab.enable() is True
    assert crontab.is_enabled()
    assert fake.content == f"{CRON_MARKER}\n{CRON_LINE}\n"


def test_enable_and_disable_are_idempotent():
    fake = FakeCrontab(EXISTING)
    crontab = Crontab(runner=fake)

    assert crontab.enable() is True
    assert crontab.enable() is False
    assert crontab.disable() is True
    assert crontab.disable() is False
    assert fake.content == EXISTING
    assert len(fake.writes) == 2


def test_cron_line_runs_automatic_rotation():
    assert has_keywarden_block(add_keywarden_block(""))
    assert "keywarden key rotate automatic --cron-output" in CRON_LINE


def test_read_failure_raises():
    crontab = Crontab(runner=FakeCrontab(read_error="crontab: permission denied\n"))
    with pytest.raises(SchedulerError, match="permission denied"):
        crontab.enable()


def test_write_failure_raises():
    def runner(args, text_to_send):
        if args[1] == "-l":
            return 0, "", ""
        return 1, "", "crontab: installing new crontab failed\n"

    with pytest.raises(SchedulerError, match="writing crontab failed"):
        Crontab(runner=runner).enable()

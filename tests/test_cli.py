from datetime import timedelta
from io import StringIO
import pytest
from typer.testing import CliRunner

from keywarden_core import __version__
from keywarden_core.cli import app, cmd_create, cmd_link, cmd_schedule
from keywarden_core.errors import KeywardenError
from keywarden_core.maintenance import ROTATE
from keywarden_core.scheduler import Crontab

from conftest import FPR_A, FPR_B, NOW, make_listing

runner = CliRunner()


@pytest.fixture
def out():
    return StringIO()


def answers(*replies):
    replies = list(replies)
    return lambda prompt="": replies.pop(0)


def invoke(ctx, *args):
    return runner.invoke(app, list(args), obj=ctx)


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == f"keywarden {__version__}"


def test_list_with_no_keys(ctx):
    result = invoke(ctx, "key", "list")
    assert result.exit_code == 0
    assert "No keys are managed yet" in result.output


def test_list_shows_health(ctx, store, keyring):
    keyring.keys = {
        FPR_A: make_listing(FPR_A, timedelta(days=60), email="good@example.com"),
        FPR_B: make_listing(FPR_B, timedelta(days=3), email="overdue@example.com"),
    }
    store.record_import(FPR_A)
    store.record_import(FPR_B)

    result = invoke(ctx, "key", "list")
    assert result.exit_code == 0
    assert "good@example.com\n" in result.output
    assert str(FPR_B) in result.output
    assert "Overdue for rotation" in result.output
    assert "Expires in 3 days!" in result.output
    assert "Good" in result.output


def test_link_by_fingerprint(ctx, store):
    result = invoke(ctx, "key", "link", FPR_A.hex())
    assert result.exit_code == 0
    assert store.list_imported() == [FPR_A]


def test_link_bad_fingerprint_is_an_error(ctx, store):
    result = invoke(ctx, "key", "link", "nonsense")
    assert result.exit_code == 2
    assert "invalid fingerprint" in result.output
    assert store.list_imported() == []


def test_rotate(ctx, store, keyring):
    keyring.keys = {
        FPR_A: make_listing(FPR_A, timedelta(days=60), email="good@example.com"),
        FPR_B: make_listing(FPR_B, timedelta(days=3), email="overdue@example.com"),
    }
    store.record_import(FPR_A)
    store.record_import(FPR_B)

    result = invoke(ctx, "key", "rotate")
    assert result.exit_code == 0
    assert result.output.splitlines() == [
        "good@example.com: good",
        "overdue@example.com: Overdue for rotation, Expires in 3 days!: extended until 19 August 2019",
        "All 2 keys are good (1 rotated).",
    ]
    assert store.get_last_action(ROTATE, FPR_B) == NOW


def test_rotate_dry_run(ctx, store, keyring):
    keyring.keys = {FPR_B: make_listing(FPR_B, timedelta(days=3), email="overdue@example.com")}
    store.record_import(FPR_B)

    result = invoke(ctx, "key", "rotate", "--dry-run")
    assert result.exit_code == 0
    assert "would extend until" in result.output
    assert keyring.rotations == []


def test_cron_output_is_silent_when_all_good(ctx, store, keyring):
    keyring.keys = {FPR_B: make_listing(FPR_B, timedelta(days=3))}
    store.record_import(FPR_B)

    result = invoke(ctx, "key", "rotate", "automatic", "--cron-output")
    assert result.exit_code == 0
    assert result.output == ""
    assert len(keyring.rotations) == 1


def test_cron_output_reports_failures(ctx, store, keyring):
    keyring.keys = {
        FPR_A: make_listing(FPR_A, timedelta(days=60), email="good@example.com"),
        FPR_B: make_listing(FPR_B, timedelta(days=3), email="bad@example.com"),
    }
    keyring.failing_rotation.add(FPR_B)
    store.record_import(FPR_A)
    store.record_import(FPR_B)

    result = invoke(ctx, "key", "rotate", "automatic", "--cron-output")
    assert result.exit_code == 1
    assert result.output.splitlines() == [
        "bad@example.com: failed: Bad passphrase",
        "1 of 2 keys failed.",
    ]


def test_rotate_rejects_unknown_mode(ctx):
    result = invoke(ctx, "key", "rotate", "sometimes")
    assert result.exit_code == 2


# ----------------------------------------------------------------------
# Interactive commands
# ----------------------------------------------------------------------
def test_link_interactive(ctx, store, keyring, out):
    keyring.keys = {f: make_listing(f, timedelta(days=60), email="x@example.com") for f in (FPR_A, FPR_B)}
    store.record_import(FPR_A)

    assert cmd_link(ctx, out, None, read=answers("5", "1")) == 0
    assert "Found 1 key in GnuPG" in out.getvalue()
    assert "Please select between 1 and 1." in out.getvalue()
    assert store.list_imported() == [FPR_A, FPR_B]


def test_link_interactive_cancel(ctx, store, keyring, out):
    keyring.keys = {FPR_A: make_listing(FPR_A, timedelta(days=60))}
    assert cmd_link(ctx, out, None, read=answers("")) == 0
    assert "No key selected to link" in out.getvalue()
    assert store.list_imported() == []


def test_link_with_nothing_to_link(ctx, out):
    assert cmd_link(ctx, out, None, read=answers()) == 1


def test_create(ctx, store, keyring, out):
    code = cmd_create(ctx, out, None, read=answers("jane@example.com"), read_secret=answers("pw", "pw"))
    assert code == 0
    assert keyring.generated == ["jane@example.com"]
    assert len(store.list_imported()) == 1
    assert "gpg --list-keys 'jane@example.com'" in out.getvalue()


def test_create_password_mismatch(ctx, out):
    secrets = answers("pw", "other", "pw", "nope")
    with pytest.raises(KeywardenError, match="password not confirmed"):
        cmd_create(ctx, out, "jane@example.com", read_secret=secrets)
    assert out.getvalue().count("That didn't match.") == 2


def test_create_without_email(ctx, keyring, out):
    assert cmd_create(ctx, out, None, read=answers("")) == 1
    assert keyring.generated == []


def test_schedule(out):
    state = {"content": ""}

    def crontab_runner(args, text_to_send):
        if args[1] == "-l":
            return 0, state["content"], ""
        state["content"] = text_to_send
        return 0, "", ""

    crontab = Crontab(runner=crontab_runner)
    assert cmd_schedule(out, "enable", crontab) == 0
    assert cmd_schedule(out, "enable", crontab) == 0
    assert cmd_schedule(out, "disable", crontab) == 0
    assert cmd_schedule(out, "disable", crontab) == 0
    assert out.getvalue().splitlines() == [
        "Added keywarden to crontab.",
        "keywarden is already in crontab.",
        "Removed keywarden from crontab.",
        "keywarden is not in crontab.",
    ]
    assert state["content"] == ""

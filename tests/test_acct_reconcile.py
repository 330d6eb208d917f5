"""Tests for the add/remove/update reconciliation passes."""

import sys
from pathlib import Path

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from acct_codec import parse_account, parse_group
from acct_config import Config
from acct_db import Databases, load_all
from acct_policy import AccountPolicy, PolicyTable
from acct_reconcile import (
    add_missing,
    reconcile,
    reconcile_accounts,
    reconcile_groups,
    remove_stale,
    update_accounts,
    update_groups,
)
from acct_records import RecordList


def _accounts(*lines):
    return RecordList(parse_account(line) for line in lines)


def _groups(*lines):
    return RecordList(parse_group(line) for line in lines)


def _ctx(table=None, **kwargs):
    return Config(policy=PolicyTable(table or {}), **kwargs)


MASTER = (
    "root:x:0:0:root:/root:/bin/bash",
    "daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin",
    "bin:x:2:2:bin:/bin:/usr/sbin/nologin",
)

SYSTEM = (
    "root:x:0:0:root:/root:/bin/bash",
    "bin:x:2:2:bin:/bin:/usr/sbin/nologin",
    "legacy:x:5:5:legacy:/nonexistent:/usr/sbin/nologin",
)


# ---------------------------------------------------------------------------
# full account reconciliation
# ---------------------------------------------------------------------------

def test_add_and_remove_scenario():
    system, master = _accounts(*SYSTEM), _accounts(*MASTER)
    dirty = reconcile_accounts(_ctx(), system, master)
    assert dirty == 2
    assert system.names() == ["root", "daemon", "bin"]


def test_no_auto_remove_keeps_legacy():
    system, master = _accounts(*SYSTEM), _accounts(*MASTER)
    ctx = _ctx({5: AccountPolicy(no_auto_remove=True)})
    dirty = reconcile_accounts(ctx, system, master)
    assert dirty == 1
    assert system.names() == ["root", "daemon", "bin", "legacy"]


def test_second_run_is_clean():
    system, master = _accounts(*SYSTEM), _accounts(*MASTER)
    ctx = _ctx()
    assert reconcile_accounts(ctx, system, master) > 0
    assert reconcile_accounts(ctx, system, master) == 0


def test_every_master_name_present_exactly_once():
    system = _accounts(
        "root:x:0:0:root:/root:/bin/bash",
        "old1:x:40:40::/:/bin/false",
        "old2:x:99:99::/:/bin/false",
        "keep:x:100:100::/:/bin/false",
        "alice:x:1000:1000::/home/alice:/bin/bash",
    )
    master = _accounts(*MASTER, "sync:x:4:65534:sync:/bin:/bin/sync")
    ctx = _ctx()
    add_missing(ctx, system, master, "user")
    remove_stale(ctx, system, master, "user")
    names = system.names()
    for rec in master:
        assert names.count(rec.name) == 1
    assert "old1" not in names
    assert "old2" not in names
    # outside the reserved range: untouched
    assert "keep" in names
    assert "alice" in names


# ---------------------------------------------------------------------------
# add_missing
# ---------------------------------------------------------------------------

def test_added_record_is_a_copy():
    system, master = _accounts(), _accounts(*MASTER)
    add_missing(_ctx(), system, master, "user")
    assert system.find_by_name("daemon") == master.find_by_name("daemon")
    assert system.find_by_name("daemon") is not master.find_by_name("daemon")


def test_add_ignores_no_auto_add():
    system = _accounts("root:x:0:0:root:/root:/bin/bash")
    master = _accounts("root:x:0:0:root:/root:/bin/bash", "ftp:x:11:65534::/srv/ftp:/bin/false")
    ctx = _ctx({11: AccountPolicy(no_auto_add=True)})
    assert add_missing(ctx, system, master, "user") == 1
    assert "ftp" in system.names()


def test_added_groups_own_their_members():
    system, master = _groups(), _groups("audio:x:29:pulse")
    add_missing(_ctx(), system, master, "group")
    system.find_by_name("audio").members.append("alice")
    assert master.find_by_name("audio").members == ["pulse"]


def test_add_reports_in_dry_run(capsys):
    system, master = _accounts(), _accounts(*MASTER[:1])
    add_missing(_ctx(dry_run=True), system, master, "user")
    assert capsys.readouterr().out == "Adding user \"root\" (0)\n"


# ---------------------------------------------------------------------------
# remove_stale
# ---------------------------------------------------------------------------

def test_remove_only_reserved_range():
    system = _accounts("legacy:x:5:5::/:/bin/false", "games:x:100:100::/:/bin/false")
    removed = remove_stale(_ctx(), system, _accounts(), "user")
    assert removed == 1
    assert system.names() == ["games"]


def test_remove_skips_nis_marker():
    system = _accounts("+::::::", "-baduser::::::")
    assert remove_stale(_ctx(), system, _accounts(), "user") == 0
    assert len(system) == 2


# ---------------------------------------------------------------------------
# update_accounts
# ---------------------------------------------------------------------------

def test_uid_change_moves_gid_too():
    system = _accounts("root:x:0:0:root:/root:/bin/bash", "daemon:x:7:7:daemon:/usr/sbin:/usr/sbin/nologin",
                       "bin:x:2:2:bin:/bin:/usr/sbin/nologin")
    master = _accounts(*MASTER)
    dirty = update_accounts(_ctx(), system, master)
    daemon = system.find_by_name("daemon")
    assert (daemon.uid, daemon.gid) == (1, 1)
    assert dirty == 1
    # list stays sorted by id
    assert system.names() == ["root", "daemon", "bin"]


def test_gid_change_counted_separately():
    system = _accounts("bin:x:2:20:bin:/bin:/usr/sbin/nologin")
    master = _accounts(*MASTER)
    assert update_accounts(_ctx(), system, master) == 1
    assert system.find_by_name("bin").gid == 2


def test_field_updates_each_counted():
    system = _accounts("bin:x:2:2:Binaries:/usr/bin:/bin/sh")
    master = _accounts(*MASTER)
    assert update_accounts(_ctx(), system, master) == 3
    assert system.find_by_name("bin") == master.find_by_name("bin")


def test_keep_home_policy():
    system = _accounts("www-data:x:33:33:www-data:/srv/www:/usr/sbin/nologin")
    master = _accounts("www-data:x:33:33:www-data:/var/www:/usr/sbin/nologin")
    ctx = _ctx({33: AccountPolicy(keep_home=True)})
    assert update_accounts(ctx, system, master) == 0
    assert system.find_by_name("www-data").home == "/srv/www"


def test_keep_all_policy_still_syncs_ids():
    system = _accounts("root:x:0:5:superuser:/home/root:/bin/zsh")
    master = _accounts("root:x:0:0:root:/root:/bin/bash")
    ctx = Config()  # built-in table: root keeps everything
    assert update_accounts(ctx, system, master) == 1
    root = system.find_by_name("root")
    assert root.gid == 0
    assert (root.gecos, root.home, root.shell) == ("superuser", "/home/root", "/bin/zsh")


def test_update_skips_ids_outside_range():
    system = _accounts("bin:x:200:200:other:/x:/bin/sh")
    master = _accounts(*MASTER)
    assert update_accounts(_ctx(), system, master) == 0


def test_update_messages(capsys):
    system = _accounts("bin:x:2:2:bin:/bin:/bin/sh")
    update_accounts(_ctx(verbose=True), system, _accounts(*MASTER))
    assert capsys.readouterr().out == "Changing shell of bin to /usr/sbin/nologin\n"


# ---------------------------------------------------------------------------
# groups
# ---------------------------------------------------------------------------

def test_group_gid_and_members_synced():
    system = _groups("root:x:0:", "adm:x:40:syslog,alice")
    master = _groups("root:x:0:", "adm:x:4:syslog")
    dirty = update_groups(_ctx(), system, master)
    adm = system.find_by_name("adm")
    assert dirty == 2
    assert adm.gid == 4
    assert adm.members == ["syslog"]
    assert adm.members is not master.find_by_name("adm").members


def test_group_members_synced_despite_special_entry():
    system = _groups("root:x:0:alice", "qmail:x:71:bob")
    master = _groups("root:x:0:", "qmail:x:71:")
    ctx = Config()  # built-in table: 0 and 71 keep everything for users
    assert update_groups(ctx, system, master) == 2
    assert system.find_by_name("root").members == []
    assert system.find_by_name("qmail").members == []


def test_group_scenario():
    system = _groups("root:x:0:", "bin:x:2:", "legacy:x:5:", "users:x:100:")
    master = _groups("root:x:0:", "daemon:x:1:", "bin:x:2:")
    assert reconcile_groups(_ctx(), system, master) == 2
    assert system.names() == ["root", "daemon", "bin", "users"]


# ---------------------------------------------------------------------------
# reconcile over a loaded tree
# ---------------------------------------------------------------------------

def test_reconcile_loaded_tree(populated):
    ctx = populated.config()
    dbs = load_all(ctx)
    assert isinstance(dbs, Databases)
    shadow_before = [r.name for r in dbs.system_shadow]
    # accounts: +daemon -legacy; groups: +daemon -legacy
    assert reconcile(ctx, dbs) == 4
    assert dbs.system_accounts.names() == ["root", "daemon", "bin", "alice"]
    assert dbs.system_groups.names() == ["root", "daemon", "bin", "alice"]
    # root keeps its local shell
    assert dbs.system_accounts.find_by_name("root").shell == "/bin/zsh"
    # shadow is never touched
    assert [r.name for r in dbs.system_shadow] == shadow_before
    assert reconcile(ctx, dbs) == 0

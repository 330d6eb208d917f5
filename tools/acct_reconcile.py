"""Bring the reserved part of the system databases in line with the master lists.

Each pass takes the run context, the system list (modified in place) and
the master list, and returns the number of changes it made.  Records are
matched by name; only ids in the reserved range are removed or updated.
Shadow entries are never touched here.
"""

from acct_records import in_reserved_range


def add_missing(ctx, system, master, descr):
    """Copy master entries whose name is missing from *system*.

    New accounts get no shadow entry; shadow is maintained elsewhere.
    """
    changes = 0
    for mrec in master:
        if system.find_by_name(mrec.name) is not None:
            continue
        rec = mrec.clone()
        system.insert(rec)
        changes += 1
        ctx.note(f"Adding {descr} \"{rec.name}\" ({rec.id})")
    return changes


def remove_stale(ctx, system, master, descr):
    """Drop reserved-range entries that are no longer in the master list."""
    changes = 0
    for rec in system:
        if not in_reserved_range(rec.id):
            continue
        if ctx.policy.no_auto_remove(rec.id):
            continue
        if master.find_by_name(rec.name) is not None:
            continue
        ctx.note(f"Removing {descr} \"{rec.name}\" ({rec.id})")
        system.remove(rec)
        changes += 1
    return changes


def update_accounts(ctx, system, master):
    """Sync ids, GECOS, home and shell of reserved accounts from master."""
    policy = ctx.policy
    changes = 0
    for rec in system:
        if not in_reserved_range(rec.id):
            continue
        mc = master.find_by_name(rec.name)
        if mc is None:
            continue

        if rec.uid != mc.uid:
            ctx.note(f"Changing uid of {rec.name} from {rec.uid} to {mc.uid}")
            rec.uid = mc.uid
            rec.gid = mc.gid
            system.reposition(rec)
            changes += 1

        if rec.gid != mc.gid:
            ctx.note(f"Changing gid of {rec.name} from {rec.gid} to {mc.gid}")
            rec.gid = mc.gid
            changes += 1

        # Policy is looked up by the id the account has now.
        if not policy.keep_gecos(rec.id) and rec.gecos != mc.gecos:
            ctx.note(f"Changing GECOS of {rec.name} to \"{mc.gecos}\"")
            rec.gecos = mc.gecos
            changes += 1

        if not policy.keep_home(rec.id) and rec.home != mc.home:
            ctx.note(f"Changing home-directory of {rec.name} to {mc.home}")
            rec.home = mc.home
            changes += 1

        if not policy.keep_shell(rec.id) and rec.shell != mc.shell:
            ctx.note(f"Changing shell of {rec.name} to {mc.shell}")
            rec.shell = mc.shell
            changes += 1
    return changes


def update_groups(ctx, system, master):
    """Sync gid and member list of reserved groups from master.

    Member lists are always taken from master; no policy flag keeps them.
    """
    changes = 0
    for rec in system:
        if not in_reserved_range(rec.id):
            continue
        mc = master.find_by_name(rec.name)
        if mc is None:
            continue

        if rec.gid != mc.gid:
            ctx.note(f"Changing gid of {rec.name} from {rec.gid} to {mc.gid}")
            rec.gid = mc.gid
            system.reposition(rec)
            changes += 1

        if rec.members != mc.members:
            ctx.note(f"Changing members of {rec.name} to \"{','.join(mc.members)}\"")
            rec.members = list(mc.members)
            changes += 1
    return changes


def reconcile_accounts(ctx, system, master):
    changes = add_missing(ctx, system, master, "user")
    changes += remove_stale(ctx, system, master, "user")
    changes += update_accounts(ctx, system, master)
    return changes


def reconcile_groups(ctx, system, master):
    changes = add_missing(ctx, system, master, "group")
    changes += remove_stale(ctx, system, master, "group")
    changes += update_groups(ctx, system, master)
    return changes


def reconcile(ctx, dbs):
    """Run all passes over a loaded Databases bundle; return the dirty count."""
    dirty = reconcile_accounts(ctx, dbs.system_accounts, dbs.master_accounts)
    dirty += reconcile_groups(ctx, dbs.system_groups, dbs.master_groups)
    return dirty

#!/usr/bin/env python3
"""Safely update /etc/passwd, /etc/shadow and /etc/group.

Brings the reserved system accounts and groups (ids 0-99) in line with
the master lists shipped by base-passwd: missing entries are added,
entries dropped from the master list are removed, and changed ids,
GECOS, home directories and shells are updated, except where the special
account table says the local value wins.  Entries with ids of 100 and
above are never touched.

Exit status: 0 on success, 1 bad configuration, 2 a file could not be
read, 3 locking failed, 4 writing failed, 5 unlocking failed, 6 the live
files fail the sanity check, 7 internal error.  With --dry-run the exit
status is the number of pending changes (at most 255).
"""

import argparse
import sys

from _env import sanitize_global_env
from acct_codec import InternalError
from acct_commit import CommitError, LockError, PasswdLock, commit_files
from acct_config import VERSION, Config, ConfigError, load_config_file
from acct_db import LoadError, load_all
from acct_reconcile import reconcile
from acct_sanity import sanity_check

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_LOAD = 2
EXIT_LOCK = 3
EXIT_COMMIT = 4
EXIT_UNLOCK = 5
EXIT_SANITY = 6
EXIT_INTERNAL = 7

# Largest exit status a process can report.
_MAX_STATUS = 255


def _parser(defaults):
    epilog = (
        "file locations used:\n"
        f"  master passwd: {defaults.passwd_master}\n"
        f"  master group : {defaults.group_master}\n"
        f"  system passwd: {defaults.passwd}\n"
        f"  system shadow: {defaults.shadow}\n"
        f"  system group : {defaults.group}\n"
    )
    parser = argparse.ArgumentParser(
        prog="update-passwd",
        description="Safely update /etc/passwd, /etc/shadow and /etc/group",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-p", "--passwd-master", metavar="FILE",
                        help="Use FILE as the master account list")
    parser.add_argument("-g", "--group-master", metavar="FILE",
                        help="Use FILE as the master group list")
    parser.add_argument("-P", "--passwd", metavar="FILE",
                        help="Use FILE as the system passwd file")
    parser.add_argument("-S", "--shadow", metavar="FILE",
                        help="Use FILE as the system shadow file")
    parser.add_argument("-G", "--group", metavar="FILE",
                        help="Use FILE as the system group file")
    parser.add_argument("-c", "--config", metavar="FILE",
                        help="Read file locations and special accounts from a YAML file")
    parser.add_argument("--lock-file", metavar="FILE",
                        help="Lock FILE instead of the standard password lock file")
    parser.add_argument("-s", "--sanity-check", action="store_true",
                        help="Only perform sanity checks")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show details about what we are doing (recommended)")
    parser.add_argument("-n", "--dry-run", action="store_true",
                        help="Just say what we would do but do nothing")
    parser.add_argument("-L", "--no-locking", action="store_true",
                        help="Don't try to lock files")
    parser.add_argument("-V", "--version", action="version",
                        version=f"update-passwd {VERSION}")
    return parser


def build_config(args):
    """Resolve defaults, the optional config file and command-line options."""
    config = Config()
    if args.config:
        load_config_file(args.config, config)
    for key in ("passwd_master", "group_master", "passwd", "shadow", "group", "lock_file"):
        value = getattr(args, key)
        if value:
            setattr(config, key, value)
    config.verbose = args.verbose
    config.dry_run = args.dry_run
    config.no_lock = args.no_locking
    config.sanity_only = args.sanity_check
    return config


def run(config):
    """Check, reconcile and commit; return the process exit status."""
    try:
        violations = sanity_check(config)
    except LoadError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_LOAD
    if violations:
        for v in violations:
            print(f"WARNING: {v.path} fails sanity check!", file=sys.stderr)
            print(str(v), file=sys.stderr)
        return EXIT_SANITY
    if config.sanity_only:
        config.debug("Sanity check passed")
        return EXIT_OK

    try:
        dbs = load_all(config)
    except LoadError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_LOAD

    dirty = reconcile(config, dbs)

    lock = PasswdLock(config.lock_file)
    if config.use_lock:
        try:
            lock.acquire()
        except LockError as e:
            print(f"error: locking files: {e}", file=sys.stderr)
            return EXIT_LOCK

    try:
        commit_files(config, dbs, dirty)
    except CommitError as e:
        print(f"error: {e}", file=sys.stderr)
        if lock.locked:
            try:
                lock.release()
            except LockError as ue:
                print(f"error: unlocking files: {ue}", file=sys.stderr)
        return EXIT_COMMIT
    except BaseException:
        if lock.locked:
            try:
                lock.release()
            except LockError as ue:
                print(f"error: unlocking files: {ue}", file=sys.stderr)
        raise

    if lock.locked:
        try:
            lock.release()
        except LockError as e:
            print(f"error: unlocking files: {e}", file=sys.stderr)
            return EXIT_UNLOCK

    if config.dry_run:
        return min(dirty, _MAX_STATUS)
    return EXIT_OK


def main(argv=None):
    args = _parser(Config()).parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    try:
        return run(config)
    except InternalError as e:
        print(f"error: internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL


def cli():
    """Console-script entry point."""
    sanitize_global_env()
    sys.exit(main())


if __name__ == "__main__":
    cli()

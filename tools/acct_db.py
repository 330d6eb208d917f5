"""Load the master and system account databases into RecordLists."""

from dataclasses import dataclass

from acct_codec import CodecError, read_records
from acct_records import RecordList


class LoadError(Exception):
    """A database could not be opened or decoded."""

    def __init__(self, path, reason, missing=False):
        super().__init__(reason)
        self.path = path
        self.reason = reason
        self.missing = missing


@dataclass
class Databases:
    master_accounts: RecordList
    master_groups: RecordList
    system_accounts: RecordList
    system_shadow: RecordList | None
    system_groups: RecordList


def read_database(path, kind):
    """Return the records of *path* as a list, in file order."""
    try:
        return list(read_records(path, kind))
    except FileNotFoundError as e:
        raise LoadError(path, f"cannot open {kind} file {path}: {e.strerror}",
                        missing=True) from e
    except OSError as e:
        raise LoadError(path, f"error reading {kind} file {path}: {e.strerror}") from e
    except CodecError as e:
        raise LoadError(path, f"error reading {kind} file {e}") from e


def load_database(ctx, path, kind, optional=False):
    """Read *path* as a *kind* database into a RecordList.

    Returns None when *optional* is set and the file does not exist; a
    file that exists but fails to decode is an error either way.
    """
    ctx.debug(f"Reading {kind} from {path}")
    try:
        records = read_database(path, kind)
    except LoadError as e:
        if optional and e.missing:
            ctx.debug(f"No {kind} file at {path}, skipping")
            return None
        raise
    return RecordList(records)


def load_all(ctx):
    """Load the two master lists and the three live databases."""
    return Databases(
        master_accounts=load_database(ctx, ctx.passwd_master, "passwd"),
        master_groups=load_database(ctx, ctx.group_master, "group"),
        system_accounts=load_database(ctx, ctx.passwd, "passwd"),
        system_shadow=load_database(ctx, ctx.shadow, "shadow", optional=True),
        system_groups=load_database(ctx, ctx.group, "group"),
    )

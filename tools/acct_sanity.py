"""Check that the live passwd and group files keep reserved ids in order.

The reserved ids (0-99) are expected at the top of each file in
ascending order, with none of them hidden further down after a larger
one.  If that is not the case somebody has edited the files by hand and
we refuse to touch them.
"""

from dataclasses import dataclass

from acct_db import read_database
from acct_records import in_reserved_range


@dataclass
class SanityViolation:
    path: str
    kind: str
    name: str
    id: int
    previous_id: int

    def __str__(self):
        what = "User" if self.kind == "passwd" else "Group"
        return (f"{what} \"{self.name}\" has id {self.id} but appears after "
                f"reserved id {self.previous_id}")


def check_reserved_order(records):
    """Return (record, running maximum) for the first record out of order.

    *records* must be in file order.  Ids outside the reserved range do
    not move the running maximum.  Returns None if the order is fine.
    """
    highest = 0
    for rec in records:
        if rec.id < highest:
            return rec, highest
        if in_reserved_range(rec.id):
            highest = rec.id
    return None


def sanity_check(ctx):
    """Check the live passwd and group files; return a list of violations.

    Unreadable files raise LoadError.
    """
    violations = []
    for path, kind in ((ctx.passwd, "passwd"), (ctx.group, "group")):
        ctx.debug(f"Checking {kind} file {path}")
        bad = check_reserved_order(read_database(path, kind))
        if bad is not None:
            rec, highest = bad
            violations.append(SanityViolation(path, kind, rec.name, rec.id, highest))
    return violations

"""In-memory records for the passwd, shadow and group databases.

Each record kind is a small dataclass exposing ``name``, ``id`` and
``clone()``.  RecordList keeps records sorted by id, with equal ids kept
in the order they were inserted (which is file order when loading).
"""

import bisect
import dataclasses
from dataclasses import dataclass, field

# Ids this tool is allowed to add, remove or edit.
RESERVED_IDS = range(0, 100)

# NIS/directory entries ("+", "+name", "-name") sort after everything else.
MAX_ID = 2**31 - 1


def in_reserved_range(id_):
    return id_ in RESERVED_IDS


def _sort_id(name, numeric):
    if name.startswith("+") or numeric is None:
        return MAX_ID
    return numeric


@dataclass
class Account:
    """passwd(5): name:passwd:uid:gid:gecos:home:shell"""
    name: str
    passwd: str
    uid: int | None
    gid: int | None
    gecos: str
    home: str
    shell: str

    kind = "passwd"

    @property
    def id(self):
        return _sort_id(self.name, self.uid)

    def clone(self):
        return dataclasses.replace(self)


@dataclass
class Credential:
    """shadow(5) entry.  Aging fields are kept as the strings we read.

    An old-style "name:passwd" line leaves them all None.
    """
    name: str
    passwd: str
    lastchg: str | None = None
    min: str | None = None
    max: str | None = None
    warn: str | None = None
    inact: str | None = None
    expire: str | None = None
    flag: str | None = None

    kind = "shadow"

    @property
    def short_form(self):
        return self.lastchg is None

    @property
    def id(self):
        # All shadow entries share one id so the list stays in file order.
        return 0

    def clone(self):
        return dataclasses.replace(self)


@dataclass
class Group:
    """group(5): name:passwd:gid:member,member,..."""
    name: str
    passwd: str
    gid: int | None
    members: list[str] = field(default_factory=list)

    kind = "group"

    @property
    def id(self):
        return _sort_id(self.name, self.gid)

    def clone(self):
        return dataclasses.replace(self, members=list(self.members))


class RecordList:
    """Records of a single kind, ascending by id.

    Lookups are linear scans; the databases handled here hold a few
    hundred entries at most.  Duplicate ids are accepted, callers decide
    what goes in.
    """

    def __init__(self, records=()):
        self._records = []
        for rec in records:
            self.insert(rec)

    def insert(self, record):
        """Insert *record* after every record with an id <= its own."""
        pos = bisect.bisect_right(self._records, record.id, key=lambda r: r.id)
        self._records.insert(pos, record)

    def remove(self, record):
        """Remove exactly *record* (by identity)."""
        for i, rec in enumerate(self._records):
            if rec is record:
                del self._records[i]
                return
        raise ValueError(f"record {record.name!r} not in list")

    def reposition(self, record):
        """Move *record* to the right place after its id was changed."""
        self.remove(record)
        self.insert(record)

    def find_by_name(self, name):
        for rec in self._records:
            if rec.name == name:
                return rec
        return None

    def find_by_id(self, id_):
        for rec in self._records:
            if rec.id == id_:
                return rec
        return None

    def names(self):
        return [rec.name for rec in self._records]

    def __iter__(self):
        # Iterate over a snapshot so passes may remove while walking.
        return iter(list(self._records))

    def __len__(self):
        return len(self._records)

    def __repr__(self):
        return f"RecordList({self._records!r})"

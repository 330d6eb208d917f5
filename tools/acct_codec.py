"""Line codec for passwd(5), shadow(5) and group(5) files.

One record per line, colon separated.  Parsing is strict about field
counts so a damaged file is refused rather than rewritten with holes.
Blank lines and '#' comments are skipped and are not written back.
Files are decoded with surrogateescape so bytes that are not UTF-8 (an
old Latin-1 GECOS, say) are written back unchanged.
"""

from acct_records import Account, Credential, Group

PASSWD_FIELDS = 7
SHADOW_FIELDS = 9
# Old-style shadow entries carry only name and password.
SHADOW_SHORT_FIELDS = 2
GROUP_FIELDS = 4


class CodecError(ValueError):
    """A line that does not decode into a record."""


class InternalError(Exception):
    """A record reached a writer for a different kind of file."""


def _split(line, nfields, what, alt=None):
    fields = line.split(":")
    if len(fields) != nfields and len(fields) != alt:
        raise CodecError(
            f"{what} entry has {len(fields)} fields, expected {nfields}")
    if not fields[0]:
        raise CodecError(f"{what} entry has an empty name")
    return fields


def _parse_id(value, name, what):
    # Directory entries ("+", "-name") may leave numeric fields empty.
    if value == "" and name[0] in "+-":
        return None
    try:
        num = int(value, 10)
    except ValueError:
        raise CodecError(f"{what} {name!r}: bad numeric id {value!r}") from None
    if num < 0 or str(num) != value:
        raise CodecError(f"{what} {name!r}: bad numeric id {value!r}")
    return num


def _format_id(value):
    return "" if value is None else str(value)


def parse_account(line):
    name, passwd, uid, gid, gecos, home, shell = _split(line, PASSWD_FIELDS, "passwd")
    return Account(
        name=name,
        passwd=passwd,
        uid=_parse_id(uid, name, "passwd"),
        gid=_parse_id(gid, name, "passwd"),
        gecos=gecos,
        home=home,
        shell=shell,
    )


def format_account(rec):
    return ":".join((rec.name, rec.passwd, _format_id(rec.uid),
                     _format_id(rec.gid), rec.gecos, rec.home, rec.shell))


def parse_credential(line):
    return Credential(*_split(line, SHADOW_FIELDS, "shadow", alt=SHADOW_SHORT_FIELDS))


def format_credential(rec):
    if rec.short_form:
        return f"{rec.name}:{rec.passwd}"
    return ":".join((rec.name, rec.passwd, rec.lastchg, rec.min, rec.max,
                     rec.warn, rec.inact, rec.expire, rec.flag))


def parse_group(line):
    name, passwd, gid, members = _split(line, GROUP_FIELDS, "group")
    return Group(
        name=name,
        passwd=passwd,
        gid=_parse_id(gid, name, "group"),
        members=members.split(",") if members else [],
    )


def format_group(rec):
    return ":".join((rec.name, rec.passwd, _format_id(rec.gid),
                     ",".join(rec.members)))


# kind -> (record class, parser, formatter)
_CODECS = {
    "passwd": (Account, parse_account, format_account),
    "shadow": (Credential, parse_credential, format_credential),
    "group": (Group, parse_group, format_group),
}

def _codec(kind):
    try:
        return _CODECS[kind]
    except KeyError:
        raise InternalError(f"unknown database kind {kind!r}") from None


def format_record(rec, kind):
    cls, _parse, fmt = _codec(kind)
    if not isinstance(rec, cls):
        raise InternalError(
            f"{type(rec).__name__} {rec.name!r} handed to the {kind} writer")
    return fmt(rec)


def read_records(path, kind):
    """Yield records from *path* in file order.

    FileNotFoundError and other OSErrors propagate unchanged; decode
    failures raise CodecError prefixed with path:lineno.
    """
    parse = _codec(kind)[1]
    with open(path, encoding="utf-8", errors="surrogateescape", newline="\n") as f:
        for lineno, line in enumerate(f, 1):
            line = line.rstrip("\n")
            if not line.strip() or line.startswith("#"):
                continue
            try:
                yield parse(line)
            except CodecError as e:
                raise CodecError(f"{path}:{lineno}: {e}") from None


def write_records(stream, records, kind):
    """Write *records* to an open text stream, one line each."""
    for rec in records:
        stream.write(format_record(rec, kind) + "\n")

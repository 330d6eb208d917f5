"""Per-id overrides for special system accounts.

Some reserved ids are customised by the admin or by other packages
(root's shell, ftp's home, the qmail users) and must not be reset to the
master values, or must never be removed automatically.  The same table is
consulted for users and groups.
"""

import types
from dataclasses import dataclass


@dataclass(frozen=True)
class AccountPolicy:
    keep_gecos: bool = False
    keep_home: bool = False
    keep_shell: bool = False
    no_auto_remove: bool = False
    no_auto_add: bool = False

    @property
    def keep_all(self):
        return self.keep_gecos and self.keep_home and self.keep_shell


NO_POLICY = AccountPolicy()

# Flag names accepted in configuration files.
FLAG_NAMES = {
    "keep-gecos": ("keep_gecos",),
    "keep-home": ("keep_home",),
    "keep-shell": ("keep_shell",),
    "keep-all": ("keep_gecos", "keep_home", "keep_shell"),
    "no-auto-remove": ("no_auto_remove",),
    "no-auto-add": ("no_auto_add",),
}


def policy_from_flags(flags):
    """Build an AccountPolicy from names like ``["keep-home", "no-auto-add"]``."""
    attrs = {}
    for flag in flags:
        try:
            names = FLAG_NAMES[flag]
        except KeyError:
            raise ValueError(f"unknown special account flag {flag!r}") from None
        for name in names:
            attrs[name] = True
    return AccountPolicy(**attrs)


_QMAIL_USER = policy_from_flags(["keep-all", "no-auto-add", "no-auto-remove"])

DEFAULT_SPECIAL_ACCOUNTS = {
    0: policy_from_flags(["keep-all", "no-auto-remove"]),                 # root
    11: policy_from_flags(["keep-home", "no-auto-add", "no-auto-remove"]),  # ftp
    33: policy_from_flags(["keep-home"]),                                 # www-data
    70: policy_from_flags(["no-auto-remove"]),                            # alias / qmail
    71: _QMAIL_USER,  # qmaild
    72: _QMAIL_USER,  # qmails
    73: _QMAIL_USER,  # qmailr
    74: _QMAIL_USER,  # qmailq
    75: _QMAIL_USER,  # qmaill
    76: _QMAIL_USER,  # qmailp
}


class PolicyTable:
    """Read-only id -> AccountPolicy mapping.  Unlisted ids have no overrides."""

    def __init__(self, entries=None):
        if entries is None:
            entries = DEFAULT_SPECIAL_ACCOUNTS
        self._entries = types.MappingProxyType(dict(entries))

    @classmethod
    def from_mapping(cls, data):
        """Build a table from ``{id: [flag, ...]}`` as found in a config file."""
        entries = {}
        for key, flags in data.items():
            try:
                id_ = int(key)
            except (TypeError, ValueError):
                raise ValueError(f"special account id {key!r} is not a number") from None
            if isinstance(flags, str):
                flags = [flags]
            if not isinstance(flags, list):
                raise ValueError(f"special account {id_}: flags must be a list")
            entries[id_] = policy_from_flags(flags)
        return cls(entries)

    def lookup(self, id_):
        return self._entries.get(id_, NO_POLICY)

    def keep_gecos(self, id_):
        return self.lookup(id_).keep_gecos

    def keep_home(self, id_):
        return self.lookup(id_).keep_home

    def keep_shell(self, id_):
        return self.lookup(id_).keep_shell

    def keep_all(self, id_):
        return self.lookup(id_).keep_all

    def no_auto_remove(self, id_):
        return self.lookup(id_).no_auto_remove

    def no_auto_add(self, id_):
        return self.lookup(id_).no_auto_add

    def __contains__(self, id_):
        return id_ in self._entries

    def __len__(self):
        return len(self._entries)

"""Run configuration for update-passwd.

Defaults live here as constants.  An optional YAML file can override the
file locations and the special account table; command-line options are
applied on top by the caller.
"""

from dataclasses import dataclass, field

import yaml

from acct_policy import PolicyTable

VERSION = "3.1.1"

DEFAULT_PASSWD_MASTER = "/usr/share/base-passwd/passwd.master"
DEFAULT_GROUP_MASTER = "/usr/share/base-passwd/group.master"
DEFAULT_PASSWD = "/etc/passwd"
DEFAULT_SHADOW = "/etc/shadow"
DEFAULT_GROUP = "/etc/group"
# Same file lckpwdf(3) locks, so passwd/useradd/vipw see us.
DEFAULT_LOCK_FILE = "/etc/.pwd.lock"

PATH_KEYS = ("passwd_master", "group_master", "passwd", "shadow", "group", "lock_file")
CONFIG_KEYS = frozenset(PATH_KEYS) | {"special_accounts"}


class ConfigError(Exception):
    """Unreadable or invalid configuration file."""


@dataclass
class Config:
    """Everything one run needs: file locations, modes and policy."""
    passwd_master: str = DEFAULT_PASSWD_MASTER
    group_master: str = DEFAULT_GROUP_MASTER
    passwd: str = DEFAULT_PASSWD
    shadow: str = DEFAULT_SHADOW
    group: str = DEFAULT_GROUP
    lock_file: str = DEFAULT_LOCK_FILE
    dry_run: bool = False
    verbose: bool = False
    no_lock: bool = False
    sanity_only: bool = False
    policy: PolicyTable = field(default_factory=PolicyTable)

    def note(self, msg):
        """Report a change decision (shown in verbose and dry-run mode)."""
        if self.verbose or self.dry_run:
            print(msg)

    def debug(self, msg):
        """Report progress (verbose mode only)."""
        if self.verbose:
            print(msg)

    @property
    def use_lock(self):
        return not (self.no_lock or self.dry_run)


def load_config_file(path, config=None):
    """Apply the YAML file at *path* to *config* (a fresh Config if None).

    Recognised keys: the PATH_KEYS file locations and ``special_accounts``,
    a mapping of id to a list of flag names.  A ``special_accounts`` table
    replaces the built-in one entirely.
    """
    if config is None:
        config = Config()
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e

    if data is None:
        return config
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    unknown = sorted(str(k) for k in set(data) - CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"{path}: unknown keys: {', '.join(unknown)}")

    for key in PATH_KEYS:
        if key in data:
            if not isinstance(data[key], str) or not data[key]:
                raise ConfigError(f"{path}: {key} must be a non-empty string")
            setattr(config, key, data[key])

    if "special_accounts" in data:
        table = data["special_accounts"] or {}
        if not isinstance(table, dict):
            raise ConfigError(f"{path}: special_accounts must be a mapping")
        try:
            config.policy = PolicyTable.from_mapping(table)
        except ValueError as e:
            raise ConfigError(f"{path}: {e}") from e

    return config

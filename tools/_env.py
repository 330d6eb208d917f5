"""Environment sanitization for privileged runs.

update-passwd runs as root from package maintainer scripts, which hand
down whatever environment the admin's shell had.  Loader, locale and
Python variables from that environment must not influence a process that
rewrites /etc/passwd, so start from a whitelist and pin the locale.
"""

import os

# Vars passed through from the caller's environment when present.
_PASSTHROUGH = frozenset({
    "PATH",
    "HOME", "USER", "LOGNAME",
    "TMPDIR",
    "TERM",
})

# Vars pinned to fixed values so output and parsing never depend on locale.
_PINS = {
    "LC_ALL": "C",
    "LANG": "C",
}


def clean_env():
    """Return the sanitized environment as a new dict."""
    env = {}
    for key in _PASSTHROUGH:
        val = os.environ.get(key)
        if val is not None:
            env[key] = val
    env.update(_PINS)
    return env


def sanitize_global_env():
    """Replace os.environ in-place with clean_env()."""
    keep = clean_env()
    os.environ.clear()
    os.environ.update(keep)

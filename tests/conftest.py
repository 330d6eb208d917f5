from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from acct_config import Config  # noqa: E402

MASTER_PASSWD = """\
root:x:0:0:root:/root:/bin/bash
daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin
bin:x:2:2:bin:/bin:/usr/sbin/nologin
"""

MASTER_GROUP = """\
root:x:0:
daemon:x:1:
bin:x:2:
"""

SYSTEM_PASSWD = """\
root:x:0:0:root:/root:/bin/zsh
bin:x:2:2:bin:/bin:/usr/sbin/nologin
legacy:x:5:5:legacy:/nonexistent:/usr/sbin/nologin
alice:x:1000:1000:Alice,,,:/home/alice:/bin/bash
"""

SYSTEM_SHADOW = """\
root:$6$salt$hash:19000:0:99999:7:::
bin:*:19000:0:99999:7:::
legacy:*:19000:0:99999:7:::
alice:$6$other$hash:19000:0:99999:7:::
"""

SYSTEM_GROUP = """\
root:x:0:
bin:x:2:
legacy:x:5:
alice:x:1000:
"""


class EtcTree:
    """A throwaway set of master and live databases under tmp_path."""

    def __init__(self, root: Path):
        self.root = root
        self.passwd_master = root / "share" / "passwd.master"
        self.group_master = root / "share" / "group.master"
        self.passwd = root / "etc" / "passwd"
        self.shadow = root / "etc" / "shadow"
        self.group = root / "etc" / "group"
        self.lock_file = root / "etc" / ".pwd.lock"
        (root / "share").mkdir(parents=True, exist_ok=True)
        (root / "etc").mkdir(parents=True, exist_ok=True)

    def write(self, name: str, content: str, mode: int | None = None) -> Path:
        path = getattr(self, name)
        path.write_text(content)
        if mode is not None:
            path.chmod(mode)
        return path

    def read(self, name: str) -> str:
        return getattr(self, name).read_text()

    def populate(self):
        self.write("passwd_master", MASTER_PASSWD)
        self.write("group_master", MASTER_GROUP)
        self.write("passwd", SYSTEM_PASSWD, 0o644)
        self.write("shadow", SYSTEM_SHADOW, 0o640)
        self.write("group", SYSTEM_GROUP, 0o644)
        return self

    def config(self, **overrides) -> Config:
        kwargs = dict(
            passwd_master=str(self.passwd_master),
            group_master=str(self.group_master),
            passwd=str(self.passwd),
            shadow=str(self.shadow),
            group=str(self.group),
            lock_file=str(self.lock_file),
        )
        kwargs.update(overrides)
        return Config(**kwargs)

    def argv(self, *extra: str) -> list[str]:
        return [
            "--passwd-master", str(self.passwd_master),
            "--group-master", str(self.group_master),
            "--passwd", str(self.passwd),
            "--shadow", str(self.shadow),
            "--group", str(self.group),
            "--lock-file", str(self.lock_file),
            *extra,
        ]

    def leftovers(self) -> list[str]:
        """Temp or backup siblings left next to the live files."""
        return sorted(p.name for p in (self.root / "etc").iterdir()
                      if p.name.endswith((".upwd-write", ".upwd-unlink")))


@pytest.fixture
def etc(tmp_path: Path) -> EtcTree:
    """Empty tree; tests write the files they need."""
    return EtcTree(tmp_path)


@pytest.fixture
def populated(etc: EtcTree) -> EtcTree:
    """Tree with the standard master and live databases."""
    return etc.populate()


@pytest.fixture
def run_update_passwd():
    """Callable wrapper: run_update_passwd(*args) -> CompletedProcess."""

    def _run(*args: str, timeout: int = 60) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, str(_REPO / "tools" / "update_passwd.py"), *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )

    return _run

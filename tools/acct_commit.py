"""Write the reconciled databases back and swap them into place.

Each file is written to ``<file>.upwd-write`` and then swapped in:

    <file>            -> <file>.upwd-unlink
    <file>.upwd-write -> <file>
    copy mode and owner from <file>.upwd-unlink onto <file>
    remove <file>.upwd-unlink

Other programs only ever see the old or the new file.  If a step fails
the original is renamed back.  Files are committed one at a time; a
failure on the group file does not undo an already committed passwd.
"""

import errno
import fcntl
import os
import sys
import time

from acct_codec import write_records

WRITE_EXTENSION = ".upwd-write"
UNLINK_EXTENSION = ".upwd-unlink"

# lckpwdf(3) gives up after 15 seconds.
LOCK_TIMEOUT = 15.0
_LOCK_POLL = 0.1


class CommitError(Exception):
    """A database could not be written or swapped into place."""


class RollbackError(CommitError):
    """Restoring the original file after a failed swap also failed."""


class LockError(Exception):
    """The account database lock could not be taken or released."""


def _remove_quietly(path):
    """Remove a leftover file, reporting (not raising) on failure."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        print(f"error: cannot remove {path}: {e.strerror}", file=sys.stderr)


def _fsync_dir(path):
    fd = os.open(os.path.dirname(os.path.abspath(path)), os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_database(ctx, records, kind, path):
    """Write *records* to a new file at *path*, created with mode 0600."""
    ctx.debug(f"Writing {kind}-file to {path}")
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NOFOLLOW, 0o600)
    except OSError as e:
        raise CommitError(f"cannot open {kind}-file {path} for writing: {e.strerror}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape",
                       newline="\n") as f:
            write_records(f, records, kind)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        _remove_quietly(path)
        raise CommitError(f"error writing {kind}-file {path}: {e.strerror}") from e
    except BaseException:
        _remove_quietly(path)
        raise


def copy_filemodes(source, target):
    """Give *target* the permission bits and owner of *source*."""
    st = os.lstat(source)
    try:
        os.chown(target, st.st_uid, st.st_gid, follow_symlinks=False)
    except NotImplementedError:
        # No lchown on this platform; target is a regular file we created.
        os.chown(target, st.st_uid, st.st_gid)
    except OSError as e:
        if e.errno != errno.ENOSYS:
            raise
        os.chown(target, st.st_uid, st.st_gid)
    # After chown, which may clear setuid/setgid bits.
    os.chmod(target, st.st_mode & 0o7777)


def _rollback(unlink_path, target, cause):
    try:
        os.rename(unlink_path, target)
    except OSError as e:
        raise RollbackError(
            f"{cause}; restoring {target} from {unlink_path} failed: {e.strerror}") from e


def put_file_in_place(ctx, source, target):
    """Replace *target* by *source*, keeping *target*'s mode and owner."""
    ctx.debug(f"Replacing \"{target}\" with \"{source}\"")
    unlink_path = target + UNLINK_EXTENSION

    try:
        os.rename(target, unlink_path)
    except OSError as e:
        _remove_quietly(source)
        raise CommitError(f"error renaming {target} to {unlink_path}: {e.strerror}") from e

    try:
        os.rename(source, target)
    except OSError as e:
        cause = f"error renaming {source} to {target}: {e.strerror}"
        try:
            _rollback(unlink_path, target, cause)
        finally:
            _remove_quietly(source)
        raise CommitError(cause) from e

    try:
        copy_filemodes(unlink_path, target)
    except OSError as e:
        cause = f"error copying mode and owner of {unlink_path} to {target}: {e.strerror}"
        # Renaming the original back over target also discards the new file.
        _rollback(unlink_path, target, cause)
        raise CommitError(cause) from e

    try:
        _fsync_dir(target)
        os.unlink(unlink_path)
    except OSError as e:
        raise CommitError(f"error unlinking {unlink_path}: {e.strerror}") from e


def commit_files(ctx, dbs, dirty):
    """Rewrite the live databases if anything changed.

    Does nothing when *dirty* is 0 or in dry-run mode.  Otherwise passwd,
    shadow (if one was loaded) and group are written and swapped in, in
    that order.
    """
    if not dirty:
        ctx.debug("No changes made, doing nothing")
        return
    if ctx.dry_run:
        print(f"Would commit {dirty} changes")
        return

    print(f"{dirty} changes have been made, rewriting files")
    targets = [(dbs.system_accounts, "passwd", ctx.passwd)]
    if dbs.system_shadow is not None:
        targets.append((dbs.system_shadow, "shadow", ctx.shadow))
    targets.append((dbs.system_groups, "group", ctx.group))

    for records, kind, path in targets:
        tmp = path + WRITE_EXTENSION
        write_database(ctx, records, kind, tmp)
        put_file_in_place(ctx, tmp, path)


class PasswdLock:
    """Advisory lock on the account database, compatible with lckpwdf(3).

    glibc's lckpwdf() takes an fcntl write lock on /etc/.pwd.lock, so
    taking the same lock here keeps passwd, useradd and friends out.
    """

    def __init__(self, path, timeout=LOCK_TIMEOUT):
        self.path = path
        self.timeout = timeout
        self._fd = None

    def acquire(self):
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_CLOEXEC, 0o600)
        except OSError as e:
            raise LockError(f"cannot open lock file {self.path}: {e.strerror}") from e
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError as e:
                if e.errno not in (errno.EACCES, errno.EAGAIN) or time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockError(f"cannot lock {self.path}: {e.strerror}") from e
                time.sleep(_LOCK_POLL)
        self._fd = fd

    def release(self):
        if self._fd is None:
            raise LockError(f"{self.path} is not locked")
        fd, self._fd = self._fd, None
        try:
            fcntl.lockf(fd, fcntl.LOCK_UN)
        except OSError as e:
            raise LockError(f"cannot unlock {self.path}: {e.strerror}") from e
        finally:
            os.close(fd)

    @property
    def locked(self):
        return self._fd is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *exc):
        self.release()

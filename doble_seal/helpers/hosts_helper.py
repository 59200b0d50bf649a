#!/usr/bin/env python3
"""Privileged hosts-file helper for doble-seal.

Installed as /usr/local/bin/doble-seal-hosts-helper and launched through
pkexec. Reads one JSON request from stdin, writes one JSON response to
stdout. Exit codes: 0 success, 1 operation failed, 2 malformed request.

This program runs as root under the system interpreter, so it depends on the
standard library only. Every mutating action copies the hosts file to
``hosts.backup.<timestamp>.txt`` before writing it.
"""

import errno
import json
import os
import pwd
import re
import shutil
import stat
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

HELPER_VERSION = "1.2.0"

MANAGED_TAG = "# doble-seal"
DEFAULT_HOSTS_FILE = Path("/etc/hosts")
BACKUP_PREFIX = "hosts.backup."
BACKUP_SUFFIX = ".txt"
BACKUP_DIR_PARTS = (".config", "doble-seal", "hosts-backups")
BACKUP_NAME = re.compile(r"^hosts\.backup\.[A-Za-z0-9_.:-]+\.txt$")

DOMAIN_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
IPV4_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
)


class HelperError(Exception):
    """Operation failed; reported on stderr with exit code 1."""

    exit_code = 1


class RequestError(HelperError):
    """Malformed request; exit code 2."""

    exit_code = 2


class Context:
    """Hosts file, backup directory and backup owner for this invocation.

    Environment overrides are honoured only when the helper was not started
    through pkexec or sudo, so an elevated run always edits /etc/hosts.

    When elevated, the backup directory lives in the invoking user's home and
    is walked one component at a time with O_NOFOLLOW; every component must be
    a real directory owned by that user, so a symlink planted there cannot
    redirect root's writes or chown.
    """

    def __init__(self, environ):
        invoking_uid = environ.get("PKEXEC_UID") or environ.get("SUDO_UID")
        if invoking_uid:
            self.owner_uid = int(invoking_uid)
            self.hosts_file = DEFAULT_HOSTS_FILE
            self.backup_anchor = Path(pwd.getpwuid(self.owner_uid).pw_dir)
            self.backup_parts = BACKUP_DIR_PARTS
        else:
            self.owner_uid = None
            self.hosts_file = Path(environ.get("DOBLE_SEAL_HOSTS_FILE", str(DEFAULT_HOSTS_FILE)))
            backup_dir = environ.get("DOBLE_SEAL_BACKUP_DIR")
            backup_dir = Path(backup_dir) if backup_dir else Path.home().joinpath(*BACKUP_DIR_PARTS)
            self.backup_anchor = backup_dir.parent
            self.backup_parts = (backup_dir.name,)
        self.backup_dir = self.backup_anchor.joinpath(*self.backup_parts)

    def read_lines(self):
        try:
            return self.hosts_file.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

    def write_lines(self, lines):
        text = "\n".join(lines) + "\n"
        fd, tmp_name = tempfile.mkstemp(dir=self.hosts_file.parent, prefix=".hosts.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(text)
            if self.hosts_file.exists():
                shutil.copymode(self.hosts_file, tmp_name)
            else:
                os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.hosts_file)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _check_owner(self, fd, name):
        info = os.fstat(fd)
        if not stat.S_ISDIR(info.st_mode):
            raise HelperError(f"refusing backup path component {name}: not a directory")
        if self.owner_uid is not None and info.st_uid != self.owner_uid:
            raise HelperError(f"refusing backup path component {name}: not owned by uid {self.owner_uid}")

    def open_backup_dir(self, create):
        """Return an fd for the backup directory, never following symlinks below the anchor."""
        if create and self.owner_uid is None:
            self.backup_anchor.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.backup_anchor, os.O_RDONLY | os.O_DIRECTORY)
        try:
            for name in self.backup_parts:
                if create:
                    try:
                        os.mkdir(name, 0o700, dir_fd=fd)
                        if self.owner_uid is not None:
                            os.chown(name, self.owner_uid, -1, dir_fd=fd, follow_symlinks=False)
                    except FileExistsError:
                        pass
                try:
                    child = os.open(name, os.O_RDONLY | os.O_DIRECTORY | os.O_NOFOLLOW, dir_fd=fd)
                except FileNotFoundError:
                    raise HelperError(f"backup directory not found: {self.backup_dir}") from None
                except OSError as e:
                    if e.errno in (errno.ELOOP, errno.ENOTDIR):
                        raise HelperError(f"refusing symlinked backup path component {name}") from e
                    raise
                os.close(fd)
                fd = child
                self._check_owner(fd, name)
        except BaseException:
            os.close(fd)
            raise
        return fd

    def backup(self):
        try:
            content = self.hosts_file.read_bytes()
        except FileNotFoundError:
            content = b""
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        name = f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"

        dir_fd = self.open_backup_dir(create=True)
        try:
            fd = os.open(
                name, os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_NOFOLLOW, 0o600, dir_fd=dir_fd
            )
            with os.fdopen(fd, "wb") as handle:
                if self.owner_uid is not None:
                    os.fchown(handle.fileno(), self.owner_uid, -1)
                handle.write(content)
        finally:
            os.close(dir_fd)
        return self.backup_dir / name

    def read_backup(self, name):
        """Contents of a regular backup file in the backup directory; symlinks are refused."""
        dir_fd = self.open_backup_dir(create=False)
        try:
            try:
                fd = os.open(name, os.O_RDONLY | os.O_NOFOLLOW, dir_fd=dir_fd)
            except FileNotFoundError:
                raise HelperError(f"backup not found: {name}") from None
            except OSError as e:
                if e.errno == errno.ELOOP:
                    raise HelperError(f"refusing symlinked backup: {name}") from e
                raise
            with os.fdopen(fd, "rb") as handle:
                info = os.fstat(handle.fileno())
                if not stat.S_ISREG(info.st_mode):
                    raise HelperError(f"not a regular file: {name}")
                if self.owner_uid is not None and info.st_uid != self.owner_uid:
                    raise HelperError(f"backup not owned by uid {self.owner_uid}: {name}")
                return handle.read().decode("utf-8")
        finally:
            os.close(dir_fd)


def host_names(line):
    """Hostnames on a hosts line, or [] for blanks and comments."""
    content = line.split("#", 1)[0].split()
    return content[1:] if len(content) > 1 else []


def line_key(line):
    content = line.split("#", 1)[0].split()
    return tuple(content) if len(content) > 1 else None


def require_domain(request):
    domain = request.get("domain")
    if not isinstance(domain, str) or not DOMAIN_PATTERN.fullmatch(domain):
        raise RequestError(f"invalid domain: {domain!r}")
    return domain


def action_add(ctx, request):
    domain = require_domain(request)
    ip = request.get("ip") or "127.0.0.1"
    if not isinstance(ip, str) or not IPV4_PATTERN.fullmatch(ip):
        raise RequestError(f"invalid IPv4 address: {ip!r}")

    backup = ctx.backup()
    lines = ctx.read_lines()
    for line in lines:
        if line_key(line) and line_key(line)[0] == ip and domain in host_names(line):
            return {"success": True, "message": f"{domain} already maps to {ip}", "backup": str(backup)}

    kept = [line for line in lines if not (MANAGED_TAG in line and domain in host_names(line))]
    kept.append(f"{ip} {domain} {MANAGED_TAG}")
    ctx.write_lines(kept)
    return {"success": True, "message": f"added {ip} {domain}", "backup": str(backup)}


def action_remove(ctx, request):
    domain = require_domain(request)
    backup = ctx.backup()
    lines = ctx.read_lines()
    kept = [line for line in lines if domain not in host_names(line)]
    ctx.write_lines(kept)
    return {
        "success": True,
        "message": f"removed {domain}",
        "removed": len(lines) - len(kept),
        "backup": str(backup),
    }


def action_list(ctx, request):
    hosts = []
    for line in ctx.read_lines():
        if MANAGED_TAG not in line:
            continue
        key = line_key(line)
        if key:
            for name in key[1:]:
                hosts.append({"ip": key[0], "domain": name})
    return {"success": True, "hosts": hosts}


def action_cleanup(ctx, request):
    backup = ctx.backup()
    lines = ctx.read_lines()
    seen = set()
    kept = []
    for line in lines:
        key = line_key(line)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        kept.append(line)
    ctx.write_lines(kept)
    return {
        "success": True,
        "message": "duplicates removed",
        "removed": len(lines) - len(kept),
        "backup": str(backup),
    }


def action_restore(ctx, request):
    backup_file = request.get("backupFile")
    if not isinstance(backup_file, str) or not backup_file:
        raise RequestError("backupFile is required")
    source = Path(backup_file)
    if not BACKUP_NAME.fullmatch(source.name):
        raise RequestError(f"not a hosts backup: {backup_file}")
    if source.parent.resolve() != ctx.backup_dir.resolve():
        raise RequestError(f"backup is outside {ctx.backup_dir}: {backup_file}")
    content = ctx.read_backup(source.name)

    backup = ctx.backup()
    ctx.write_lines(content.splitlines())
    return {"success": True, "message": f"restored {source.name}", "backup": str(backup)}


def action_version(ctx, request):
    return {"success": True, "version": HELPER_VERSION}


ACTIONS = {
    "add": action_add,
    "remove": action_remove,
    "list": action_list,
    "cleanup": action_cleanup,
    "restore": action_restore,
    "version": action_version,
}


def main(stdin=None, environ=None):
    stdin = stdin if stdin is not None else sys.stdin
    environ = environ if environ is not None else os.environ
    try:
        try:
            request = json.loads(stdin.read())
        except ValueError as e:
            raise RequestError(f"request is not valid JSON: {e}") from e
        if not isinstance(request, dict):
            raise RequestError("request must be a JSON object")
        handler = ACTIONS.get(request.get("action"))
        if handler is None:
            raise RequestError(f"unknown action: {request.get('action')!r}")
        response = handler(Context(environ), request)
    except HelperError as e:
        print(str(e), file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f"{e.__class__.__name__}: {e}", file=sys.stderr)
        return 1

    print(json.dumps(response))
    return 0


if __name__ == "__main__":
    sys.exit(main())

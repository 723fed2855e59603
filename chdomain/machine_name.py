"""Machine names for running domains.

A running domain is registered with systemd-machined under a machine
name. When the VMM process is already registered we reuse that name;
otherwise the name is derived from the driver, the privilege level, and
the domain id and name, always the same way.
"""

from __future__ import annotations

import logging
import os
import pwd
import re
from pathlib import Path

from chdomain.config import settings

logger = logging.getLogger(__name__)

MACHINE_NAME_MAX_LEN = 64

_HOSTNAME_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-"
)

# e.g. 0::/machine.slice/machine-ch\x2d3\x2dvm1.scope/vcpu0
_MACHINE_SCOPE_RE = re.compile(r"/machine-([^/]+)\.scope(?:/|$)")
_SYSTEMD_ESCAPE_RE = re.compile(r"\\x([0-9a-fA-F]{2})")


def systemd_unescape(value: str) -> str:
    """Decode systemd unit name escapes (\\xNN)."""
    return _SYSTEMD_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), value)


def _user_name() -> str:
    """Name of the effective user, or its numeric uid without a passwd entry."""
    uid = os.geteuid()
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        logger.debug(f"No passwd entry for uid {uid}, using the numeric uid")
        return str(uid)


def append_valid(prefix: str, name: str, max_len: int = MACHINE_NAME_MAX_LEN) -> str:
    """Append the machine-name-safe characters of name to prefix.

    Leading and repeated '.'/'-' are collapsed, other characters outside
    [a-zA-Z0-9-] are dropped, the result is capped at max_len and trailing
    '.'/'-' are trimmed.
    """
    buf = prefix
    skip_dot = True
    for ch in name:
        if len(buf) >= max_len:
            break
        if ch in ".-":
            if not skip_dot:
                buf += ch
            skip_dot = True
            continue
        skip_dot = False
        if ch not in _HOSTNAME_CHARS:
            continue
        buf += ch
    return buf.rstrip("-.")


class MachineNameService:
    """Resolve and generate machine names."""

    def __init__(self, proc_path: str | None = None):
        self._proc_path = Path(proc_path or settings.proc_path)

    def lookup_by_pid(self, pid: int) -> str | None:
        """Return the machine name registered for a process, if any.

        Reads the process cgroup membership and extracts the name from a
        machine-<name>.scope unit.

        Raises:
            OSError: The cgroup file could not be read
        """
        cgroup = (self._proc_path / str(pid) / "cgroup").read_text()
        for line in cgroup.splitlines():
            # hierarchy-ID:controller-list:cgroup-path
            path = line.split(":", 2)[-1]
            match = _MACHINE_SCOPE_RE.search(path)
            if match:
                return systemd_unescape(match.group(1))
        return None

    def generate(
        self,
        driver_name: str,
        privileged: bool,
        domain_id: int,
        name: str,
    ) -> str:
        """Generate the machine name for a domain.

        Format: {driver}-[{user}-]{id}-{sanitized name}
        """
        prefix = f"{driver_name}-"
        if not privileged:
            prefix += f"{_user_name()}-"
        prefix += f"{domain_id}-"
        return append_valid(prefix, name)

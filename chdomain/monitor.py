"""Monitor handle for a running Cloud Hypervisor process.

The monitor is the driver's handle on a live VMM. Thread introspection
reads the process task list: Cloud Hypervisor names its vCPU threads
``vcpu<N>`` and its device worker threads after the device
(``_disk0_q0``, ``_net1_qp0``, ``_rng``), everything else belongs to the
VMM itself.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from chdomain.config import settings
from chdomain.errors import MonitorError

logger = logging.getLogger(__name__)

_VCPU_THREAD_RE = re.compile(r"^vcpu(\d+)$")
_IO_THREAD_PREFIXES = ("_disk", "_net", "_rng")


class ThreadType(str, Enum):
    """Role of a VMM thread."""
    VCPU = "vcpu"
    EMULATOR = "emulator"
    IO = "io"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class VcpuThreadInfo:
    """vCPU index and OS thread id of a vCPU thread."""
    cpuid: int
    tid: int


@dataclass(frozen=True)
class MonitorThreadInfo:
    """One thread of the VMM process."""
    type: ThreadType
    tid: int
    name: str = ""
    vcpu: VcpuThreadInfo | None = None


def classify_thread(tid: int, name: str) -> MonitorThreadInfo:
    """Build a thread record from its OS name."""
    match = _VCPU_THREAD_RE.match(name)
    if match:
        return MonitorThreadInfo(
            type=ThreadType.VCPU,
            tid=tid,
            name=name,
            vcpu=VcpuThreadInfo(cpuid=int(match.group(1)), tid=tid),
        )
    if name.startswith(_IO_THREAD_PREFIXES):
        return MonitorThreadInfo(type=ThreadType.IO, tid=tid, name=name)
    return MonitorThreadInfo(type=ThreadType.EMULATOR, tid=tid, name=name)


class Monitor(ABC):
    """Abstract handle on a running VMM."""

    @property
    @abstractmethod
    def pid(self) -> int:
        """Process id of the VMM."""
        ...

    @abstractmethod
    def get_thread_info(self, refresh: bool) -> list[MonitorThreadInfo]:
        """Return the current threads of the VMM process.

        Args:
            refresh: Include the metadata needed to classify threads.
                Without it every record is of type UNKNOWN.

        Raises:
            MonitorError: The VMM could not be queried
        """
        ...


class ProcfsMonitor(Monitor):
    """Monitor reading thread information from procfs."""

    def __init__(self, pid: int, proc_path: str | None = None):
        self._pid = pid
        self._proc_path = Path(proc_path or settings.proc_path)

    @property
    def pid(self) -> int:
        return self._pid

    def get_thread_info(self, refresh: bool) -> list[MonitorThreadInfo]:
        task_dir = self._proc_path / str(self._pid) / "task"
        try:
            tids = sorted(int(entry.name) for entry in task_dir.iterdir() if entry.name.isdigit())
        except FileNotFoundError:
            raise MonitorError(
                f"VMM process {self._pid} is not running", pid=self._pid
            ) from None
        except OSError as e:
            raise MonitorError(
                f"Could not list threads of VMM process {self._pid}: {e}", pid=self._pid
            ) from e

        threads: list[MonitorThreadInfo] = []
        for tid in tids:
            if not refresh:
                threads.append(MonitorThreadInfo(type=ThreadType.UNKNOWN, tid=tid))
                continue
            try:
                name = (task_dir / str(tid) / "comm").read_text().strip()
            except FileNotFoundError:
                # Thread exited between listing and reading
                logger.debug(f"Thread {tid} of VMM {self._pid} exited during scan")
                continue
            except OSError as e:
                raise MonitorError(
                    f"Could not read name of thread {tid} of VMM {self._pid}: {e}",
                    pid=self._pid,
                ) from e
            threads.append(classify_thread(tid, name))
        return threads

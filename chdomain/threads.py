"""vCPU thread reconciliation.

The VMM decides which OS thread runs each vCPU. refresh_thread_info()
pulls the live thread list from the monitor and copies vCPU thread ids
into the domain's VcpuPrivate slots.
"""

from __future__ import annotations

import logging

from chdomain.domain import DomainObject
from chdomain.errors import MonitorError
from chdomain.monitor import ThreadType
from chdomain.private import VCPU_TID_UNSET, get_monitor

logger = logging.getLogger(__name__)


def refresh_thread_info(vm: DomainObject) -> None:
    """Refresh vCPU thread ids from the running VMM.

    Holds the domain lock for the whole query-and-update sequence.
    A vCPU count that differs from the declared maximum is logged as a
    warning and does not fail the call; until vCPU hotplug exists, a
    partially started VMM is expected to report fewer threads.

    Raises:
        MonitorError: No monitor is attached, or the VMM query failed
    """
    with vm:
        monitor = get_monitor(vm)
        if monitor is None:
            raise MonitorError(f"No monitor attached to domain {vm.name}")

        max_vcpus = vm.definition.max_vcpus
        threads = monitor.get_thread_info(refresh=True)

        ncpus = 0
        for thread in threads:
            if thread.type != ThreadType.VCPU or thread.vcpu is None:
                continue
            ncpus += 1

            vcpupriv = vm.get_vcpu(thread.vcpu.cpuid)
            if vcpupriv is None:
                logger.debug(
                    f"Domain {vm.name}: ignoring thread {thread.tid} for "
                    f"undeclared vcpu {thread.vcpu.cpuid}"
                )
                continue
            vcpupriv.tid = thread.vcpu.tid

        # TODO: drop once vCPU hotplug lets the counts legitimately differ
        if ncpus != max_vcpus:
            logger.warning(
                f"Domain {vm.name}: mismatch in the number of cpus, "
                f"expected: {max_vcpus}, actual: {ncpus}"
            )


def get_vcpu_tid(vm: DomainObject, vcpu_id: int) -> int:
    """Return the thread id of a vCPU, VCPU_TID_UNSET when unknown."""
    with vm:
        vcpupriv = vm.get_vcpu(vcpu_id)
        return vcpupriv.tid if vcpupriv is not None else VCPU_TID_UNSET


def has_vcpu_tids(vm: DomainObject) -> bool:
    """Return True if any vCPU slot has a known thread id."""
    with vm:
        return any(vcpu.tid > 0 for vcpu in vm.vcpus)

"""Driver-private runtime state attached to domain objects.

DomainPrivate holds what the portable definition cannot: the monitor
handle of the running VMM, the character device registry and the
resolved machine name. VcpuPrivate holds the OS thread id behind one
vCPU slot. Both are created and destroyed with their domain object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from chdomain.chardev import CharDeviceRegistry
from chdomain.monitor import Monitor

if TYPE_CHECKING:
    from chdomain.domain import DomainObject
    from chdomain.driver import DriverContext

logger = logging.getLogger(__name__)

# Thread id of a vCPU whose thread is not known yet
VCPU_TID_UNSET = 0


@dataclass(eq=False)
class DomainPrivate:
    """Per-domain driver state."""
    driver: "DriverContext"
    chrdevs: CharDeviceRegistry | None
    monitor: Monitor | None = None
    machine_name: str | None = None


@dataclass
class VcpuPrivate:
    """Per-vCPU driver state."""
    tid: int = VCPU_TID_UNSET


def alloc_domain_private(driver: "DriverContext") -> DomainPrivate:
    """Allocate private state for a new domain object.

    A failure to allocate the character device registry fails the
    whole allocation.
    """
    chrdevs = driver.chardev_factory()
    return DomainPrivate(driver=driver, chrdevs=chrdevs)


def free_domain_private(priv: DomainPrivate | None) -> None:
    """Release private state. Safe to call twice or with None."""
    if priv is None:
        return
    if priv.chrdevs is not None:
        priv.chrdevs.free()
        priv.chrdevs = None
    priv.machine_name = None


def alloc_vcpu_private() -> VcpuPrivate:
    return VcpuPrivate()


def get_monitor(vm: "DomainObject") -> Monitor | None:
    return vm.private.monitor


def resolve_machine_name(vm: "DomainObject") -> str:
    """Return the machine name of a domain.

    Prefers the name the running VMM process is registered under. Any
    lookup failure is logged and ignored; the generated name is used
    whenever no registered name was found.
    """
    priv = vm.private
    driver = priv.driver
    name: str | None = None

    if vm.pid:
        try:
            name = driver.machine_names.lookup_by_pid(vm.pid)
        except Exception as e:
            logger.debug(f"Machine name lookup for pid {vm.pid} failed: {e}")
            name = None

    if not name:
        name = driver.machine_names.generate(
            driver.driver_name,
            driver.privileged,
            vm.definition.id,
            vm.definition.name,
        )

    priv.machine_name = name
    return name

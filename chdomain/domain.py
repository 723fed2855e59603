"""Domain objects and the per-driver domain list.

A DomainObject pairs a validated definition with its driver-private
state and one VcpuPrivate per declared vCPU slot. Callers must hold the
object's lock (``with vm:``) while reading or writing private state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from chdomain.errors import ConfigUnsupportedError, NoDomainError
from chdomain.private import (
    DomainPrivate,
    VcpuPrivate,
    alloc_domain_private,
    alloc_vcpu_private,
    free_domain_private,
)
from chdomain.schemas import DomainDefinition

if TYPE_CHECKING:
    from chdomain.driver import DriverContext

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class DomainObject:
    """A defined domain and its runtime state."""
    definition: DomainDefinition
    private: DomainPrivate
    vcpus: list[VcpuPrivate]
    pid: int = 0
    persistent: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __enter__(self) -> "DomainObject":
        self._lock.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()

    @property
    def uuid(self) -> str:
        return self.definition.uuid

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def is_active(self) -> bool:
        return self.definition.id != -1

    def get_vcpu(self, vcpu_id: int) -> VcpuPrivate | None:
        """Return the private state of a vCPU slot, or None if undeclared."""
        if 0 <= vcpu_id < len(self.vcpus):
            return self.vcpus[vcpu_id]
        return None


class DomainObjectList:
    """Thread-safe table of a driver's domain objects, keyed by UUID."""

    def __init__(self, driver: "DriverContext"):
        self._driver = driver
        self._objs: dict[str, DomainObject] = {}
        self._lock = threading.Lock()

    def add(self, definition: DomainDefinition, persistent: bool = False) -> DomainObject:
        """Create a domain object for an already validated definition."""
        private = alloc_domain_private(self._driver)
        vm = DomainObject(
            definition=definition,
            private=private,
            vcpus=[alloc_vcpu_private() for _ in range(definition.max_vcpus)],
            persistent=persistent,
        )
        with self._lock:
            if definition.uuid in self._objs:
                free_domain_private(private)
                raise ConfigUnsupportedError(
                    f"domain '{definition.name}' with uuid {definition.uuid} already exists"
                )
            self._objs[definition.uuid] = vm
        logger.info(f"Added domain {definition.name} ({definition.uuid})")
        return vm

    def find_by_uuid(self, uuid: str) -> DomainObject | None:
        with self._lock:
            return self._objs.get(uuid)

    def remove(self, vm: DomainObject) -> None:
        """Drop a domain object and free its private state."""
        with self._lock:
            removed = self._objs.pop(vm.uuid, None)
        if removed is None:
            return
        with vm:
            free_domain_private(vm.private)
        logger.info(f"Removed domain {vm.name} ({vm.uuid})")

    def list(self) -> list[DomainObject]:
        with self._lock:
            return list(self._objs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._objs)


def remove_inactive(driver: "DriverContext", vm: DomainObject) -> None:
    """Forget a domain that stopped, unless it has a persistent definition."""
    if not vm.persistent:
        driver.domains.remove(vm)


def obj_from_domain(driver: "DriverContext", uuid: str, name: str | None = None) -> DomainObject:
    """Look up a domain object by UUID.

    Raises:
        NoDomainError: No domain with that UUID is known
    """
    vm = driver.domains.find_by_uuid(uuid)
    if vm is None:
        raise NoDomainError(uuid, name)
    return vm

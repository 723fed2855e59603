"""Driver context shared by every domain of a Cloud Hypervisor driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from chdomain.capabilities import CapabilityInventory, probe_host_capabilities
from chdomain.chardev import CharDeviceRegistry
from chdomain.config import Settings, settings as default_settings
from chdomain.domain import DomainObjectList
from chdomain.machine_name import MachineNameService


@dataclass(eq=False)
class DriverContext:
    """Host-wide services the domain core depends on.

    capabilities_provider is invoked on every get_capabilities() call;
    free hugepage counts are never cached.
    """
    settings: Settings
    capabilities_provider: Callable[[], CapabilityInventory]
    machine_names: MachineNameService
    chardev_factory: Callable[[], CharDeviceRegistry] = CharDeviceRegistry
    privileged: bool = True
    domains: DomainObjectList = field(init=False)

    def __post_init__(self):
        self.domains = DomainObjectList(self)

    @property
    def driver_name(self) -> str:
        return self.settings.driver_name

    def get_capabilities(self) -> CapabilityInventory:
        return self.capabilities_provider()


def create_driver(settings: Settings | None = None) -> DriverContext:
    """Wire a driver context against the running host."""
    settings = settings or default_settings
    return DriverContext(
        settings=settings,
        capabilities_provider=lambda: probe_host_capabilities(settings),
        machine_names=MachineNameService(settings.proc_path),
        privileged=settings.privileged,
    )

from __future__ import annotations

import pytest

from chdomain.capabilities import CapabilityInventory, GuestCapability
from chdomain.config import Settings, settings
from chdomain.driver import DriverContext
from chdomain.machine_name import MachineNameService
from chdomain.schemas import DomainDefinition, MemoryTunables

HUGEPAGE_2M = 2 * 1024 * 1024
BASE_PAGE = 4096


@pytest.fixture(autouse=True)
def _isolate_host_paths(monkeypatch, tmp_path):
    """Point host introspection at temp directories.

    Keeps unit tests from reading the real /proc and /sys of the CI host.
    """
    monkeypatch.setattr(settings, "proc_path", str(tmp_path / "proc"))
    monkeypatch.setattr(settings, "hugepages_path", str(tmp_path / "hugepages"))
    monkeypatch.setattr(settings, "kvm_device", str(tmp_path / "dev" / "kvm"))
    monkeypatch.setattr(settings, "mshv_device", str(tmp_path / "dev" / "mshv"))
    yield


class FakeMachineNames(MachineNameService):
    """Naming service with a scripted pid lookup."""

    def __init__(self, registered: dict[int, str] | None = None, error: Exception | None = None):
        super().__init__()
        self.registered = registered or {}
        self.error = error
        self.lookups: list[int] = []

    def lookup_by_pid(self, pid: int) -> str | None:
        self.lookups.append(pid)
        if self.error is not None:
            raise self.error
        return self.registered.get(pid)


@pytest.fixture
def make_inventory():
    """Factory for capability snapshots (2M hugepages, x86_64/kvm by default)."""
    def _make(
        free_pages: dict[int, int] | None = None,
        guests: set[GuestCapability] | None = None,
    ) -> CapabilityInventory:
        if free_pages is None:
            free_pages = {BASE_PAGE: 1_000_000, HUGEPAGE_2M: 100}
        if guests is None:
            guests = {GuestCapability("hvm", "x86_64", "kvm")}
        return CapabilityInventory(
            page_sizes=tuple(sorted(free_pages)),
            free_pages=dict(free_pages),
            guests=frozenset(guests),
        )
    return _make


@pytest.fixture
def make_definition():
    """Factory for a minimal valid definition; keyword args override fields."""
    def _make(**overrides) -> DomainDefinition:
        fields = {
            "name": "vm1",
            "uuid": "c7a5fdbd-cdaf-9455-926a-d65c16db1809",
            "emulator": "/usr/bin/cloud-hypervisor",
            "os": {"type": "hvm", "arch": "x86_64"},
            "memory": MemoryTunables(total_memory=512 * 1024 * 1024),
        }
        fields.update(overrides)
        return DomainDefinition(**fields)
    return _make


@pytest.fixture
def inventory(make_inventory) -> CapabilityInventory:
    return make_inventory()


@pytest.fixture
def machine_names() -> FakeMachineNames:
    return FakeMachineNames()


@pytest.fixture
def driver(inventory, machine_names) -> DriverContext:
    """Driver context serving the `inventory` fixture."""
    ctx = DriverContext(
        settings=Settings(),
        capabilities_provider=lambda: inventory,
        machine_names=machine_names,
        privileged=True,
    )
    return ctx

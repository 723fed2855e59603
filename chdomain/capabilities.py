"""Host capability inventory for the Cloud Hypervisor driver.

The inventory is a point-in-time snapshot: supported memory page sizes,
the number of free pages of each size, and the guest (os type, arch,
virt type) combinations the host can run. Free page counts change
underneath us, so callers query a fresh inventory for every validation.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from dataclasses import dataclass, field
from pathlib import Path

from chdomain.config import Settings, settings as default_settings
from chdomain.errors import ConfigUnsupportedError, HostQueryError

logger = logging.getLogger(__name__)

_HUGEPAGE_DIR_RE = re.compile(r"^hugepages-(\d+)kB$")

# platform.machine() spellings -> guest arch names
_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
}


@dataclass(frozen=True)
class GuestCapability:
    """A guest configuration the host can run."""
    os_type: str
    arch: str
    virt_type: str


@dataclass(frozen=True)
class CapabilityInventory:
    """Snapshot of host memory page and guest support."""
    page_sizes: tuple[int, ...] = ()
    free_pages: dict[int, int] = field(default_factory=dict)
    guests: frozenset[GuestCapability] = frozenset()

    def supports_page_size(self, size: int) -> bool:
        return size in self.page_sizes

    def free_page_count(self, size: int) -> int:
        return self.free_pages.get(size, 0)

    def default_arch(self, os_type: str, virt_type: str) -> str | None:
        """Pick the architecture used when a definition does not name one."""
        arches = sorted(
            g.arch for g in self.guests
            if g.os_type == os_type and g.virt_type == virt_type
        )
        return arches[0] if arches else None

    def domain_supported(self, os_type: str, arch: str | None, virt_type: str) -> bool:
        return any(
            g.os_type == os_type and g.arch == arch and g.virt_type == virt_type
            for g in self.guests
        )

    def check_domain_supported(self, os_type: str, arch: str | None, virt_type: str) -> None:
        """Raise ConfigUnsupportedError when the guest triple is unsupported."""
        if self.domain_supported(os_type, arch, virt_type):
            return
        raise ConfigUnsupportedError(
            f"could not find capabilities for ostype={os_type} "
            f"arch={arch} domaintype={virt_type}"
        )


def host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def _read_int(path: Path) -> int:
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError) as e:
        raise HostQueryError(f"Could not read {path}: {e}") from e


def _probe_hugepages(hugepages_path: Path) -> dict[int, int]:
    """Return {page_size_bytes: free_pages} from the sysfs hugepages tree."""
    pages: dict[int, int] = {}
    if not hugepages_path.is_dir():
        logger.debug(f"No hugepage support found at {hugepages_path}")
        return pages

    for entry in sorted(hugepages_path.iterdir()):
        match = _HUGEPAGE_DIR_RE.match(entry.name)
        if not match:
            continue
        size = int(match.group(1)) * 1024
        pages[size] = _read_int(entry / "free_hugepages")
    return pages


def probe_host_capabilities(settings: Settings | None = None) -> CapabilityInventory:
    """Build a capability inventory from the running host.

    The base page size is always reported, with the free page count taken
    from the kernel's available physical pages. Hugepage sizes come from
    sysfs. A guest entry is added per hypervisor device present on the
    host (KVM, MSHV).
    """
    settings = settings or default_settings

    base_page = os.sysconf("SC_PAGE_SIZE")
    try:
        base_free = os.sysconf("SC_AVPHYS_PAGES")
    except (OSError, ValueError):
        base_free = 0

    free_pages = {base_page: base_free}
    free_pages.update(_probe_hugepages(Path(settings.hugepages_path)))

    arch = host_arch()
    guests = set()
    if Path(settings.kvm_device).exists():
        guests.add(GuestCapability("hvm", arch, "kvm"))
    if Path(settings.mshv_device).exists():
        guests.add(GuestCapability("hvm", arch, "hyperv"))
    if not guests:
        logger.warning(
            f"Neither {settings.kvm_device} nor {settings.mshv_device} is present, "
            "no guests can be run on this host"
        )

    return CapabilityInventory(
        page_sizes=tuple(sorted(free_pages)),
        free_pages=free_pages,
        guests=frozenset(guests),
    )

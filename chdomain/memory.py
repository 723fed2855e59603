"""Hugepage feasibility checks for domain memory.

Cloud Hypervisor maps guest RAM as memory zones of exact size. Each zone
is backed by one page size, so a domain may request a single hugepage
size only, and the zones are always mapped shared.
"""

from __future__ import annotations

import logging

from chdomain.capabilities import CapabilityInventory
from chdomain.errors import (
    ConfigUnsupportedError,
    InsufficientHostResourcesError,
    UnsupportedHostCapabilityError,
)
from chdomain.schemas import DEFAULT_HUGEPAGE_SIZE, MemoryTunables

logger = logging.getLogger(__name__)


def check_memory_feasible(
    tunables: MemoryTunables,
    inventory: CapabilityInventory,
    *,
    initial_memory: int | None = None,
) -> None:
    """Verify the host can back the requested memory with hugepages.

    Args:
        tunables: Requested memory configuration
        inventory: Host capability snapshot
        initial_memory: Boot memory in bytes; defaults to tunables.total_memory

    Raises:
        ConfigUnsupportedError: More than one hugepage size, or shared
            memory disabled
        UnsupportedHostCapabilityError: Host lacks the page size
        InsufficientHostResourcesError: Not enough free pages right now
    """
    sizes = tunables.hugepage_sizes
    if not sizes:
        return

    if len(sizes) > 1:
        raise ConfigUnsupportedError(
            "Multiple hugepages config is not supported in CH driver "
            f"(requested sizes: {', '.join(str(s) for s in sizes)} B)"
        )

    if tunables.nosharepages:
        raise ConfigUnsupportedError("Disabling shared memory doesn't work with CH")

    page_size = sizes[0]
    if page_size == DEFAULT_HUGEPAGE_SIZE:
        raise UnsupportedHostCapabilityError(
            "Host does not support HugePage size 0 B (no page size given)",
            page_size=page_size,
        )
    if not inventory.supports_page_size(page_size):
        raise UnsupportedHostCapabilityError(
            f"Host does not support HugePage size {page_size} B",
            page_size=page_size,
        )

    if initial_memory is None:
        initial_memory = tunables.total_memory

    # A trailing partial page still occupies a whole hugepage.
    pages_needed = -(-initial_memory // page_size)
    pages_free = inventory.free_page_count(page_size)
    logger.debug(
        f"Hugepage check: size={page_size} needed={pages_needed} free={pages_free}"
    )
    if pages_needed > pages_free:
        raise InsufficientHostResourcesError(page_size, pages_needed, pages_free)

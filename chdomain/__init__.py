"""Cloud Hypervisor domain validation and vCPU thread reconciliation."""

from chdomain.capabilities import (
    CapabilityInventory,
    GuestCapability,
    probe_host_capabilities,
)
from chdomain.domain import (
    DomainObject,
    DomainObjectList,
    obj_from_domain,
    remove_inactive,
)
from chdomain.driver import DriverContext, create_driver
from chdomain.logging_config import setup_logging
from chdomain.memory import check_memory_feasible
from chdomain.devices import validate_char_devices, validate_device, validate_devices
from chdomain.private import (
    VCPU_TID_UNSET,
    DomainPrivate,
    VcpuPrivate,
    alloc_domain_private,
    alloc_vcpu_private,
    free_domain_private,
    get_monitor,
    resolve_machine_name,
)
from chdomain.schemas import DomainDefinition
from chdomain.threads import get_vcpu_tid, has_vcpu_tids, refresh_thread_info
from chdomain.validator import (
    VALIDATION_STAGES,
    post_parse,
    post_parse_basic,
    prepare_definition,
    validate,
)
from chdomain.xml_parser import parse_domain_xml

__all__ = [
    # Definitions and host data
    "DomainDefinition",
    "parse_domain_xml",
    "CapabilityInventory",
    "GuestCapability",
    "probe_host_capabilities",
    # Validation
    "check_memory_feasible",
    "validate_device",
    "validate_devices",
    "validate_char_devices",
    "VALIDATION_STAGES",
    "post_parse_basic",
    "post_parse",
    "validate",
    "prepare_definition",
    # Driver and domain objects
    "DriverContext",
    "create_driver",
    "DomainObject",
    "DomainObjectList",
    "obj_from_domain",
    "remove_inactive",
    # Private state
    "VCPU_TID_UNSET",
    "DomainPrivate",
    "VcpuPrivate",
    "alloc_domain_private",
    "alloc_vcpu_private",
    "free_domain_private",
    "get_monitor",
    "resolve_machine_name",
    # Thread reconciliation
    "refresh_thread_info",
    "get_vcpu_tid",
    "has_vcpu_tids",
    # Embedding process setup
    "setup_logging",
]

"""Domain definition validation for the Cloud Hypervisor driver.

A definition goes through three phases before a domain object is
created:

1. post_parse_basic: structural defaults, no host data needed
2. post_parse: host-dependent defaults and the guest type check
3. validate: the ordered VALIDATION_STAGES pipeline

Every phase raises on the first problem; nothing is applied from a
definition that fails.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from chdomain.config import Settings, settings as default_settings
from chdomain.devices import validate_devices
from chdomain.errors import ConfigUnsupportedError, CpuModeUnsupportedError
from chdomain.memory import check_memory_feasible
from chdomain.schemas import CpuMode, DomainDefinition

if TYPE_CHECKING:
    from chdomain.driver import DriverContext

logger = logging.getLogger(__name__)


def post_parse_basic(definition: DomainDefinition, settings: Settings | None = None) -> None:
    """Fill in the emulator path when the definition has none.

    Raises:
        ConfigUnsupportedError: The emulator binary is not on PATH
    """
    settings = settings or default_settings
    if definition.emulator:
        return

    emulator = shutil.which(settings.ch_command)
    if not emulator:
        raise ConfigUnsupportedError("No emulator found for cloud-hypervisor")
    logger.debug(f"Defaulting emulator of {definition.name} to {emulator}")
    definition.emulator = emulator


def post_parse(definition: DomainDefinition, driver: "DriverContext") -> None:
    """Check the guest type against the host capabilities.

    Raises:
        ConfigUnsupportedError: The os type/arch/virt type is not supported
    """
    caps = driver.get_capabilities()
    if not definition.os.arch:
        definition.os.arch = caps.default_arch(definition.os.type, definition.virt_type)
    caps.check_domain_supported(definition.os.type, definition.os.arch, definition.virt_type)


def validate_cpu_mode(definition: DomainDefinition, driver: "DriverContext") -> None:
    """Only host-passthrough CPUs are supported."""
    if definition.cpu is None:
        return
    if definition.cpu.mode != CpuMode.HOST_PASSTHROUGH:
        logger.error(
            f"Domain {definition.name}: \"host-passthrough\" is the only CPU mode "
            f"supported by the ch driver, got \"{definition.cpu.mode.value}\""
        )
        raise CpuModeUnsupportedError(definition.cpu.mode.value)


def validate_memory(definition: DomainDefinition, driver: "DriverContext") -> None:
    check_memory_feasible(
        definition.memory,
        driver.get_capabilities(),
        initial_memory=definition.initial_memory,
    )


def validate_device_policy(definition: DomainDefinition, driver: "DriverContext") -> None:
    validate_devices(definition)


@dataclass(frozen=True)
class ValidationStage:
    """A named step of full definition validation."""
    name: str
    check: Callable[[DomainDefinition, "DriverContext"], None]


VALIDATION_STAGES: tuple[ValidationStage, ...] = (
    ValidationStage("cpu-mode", validate_cpu_mode),
    ValidationStage("memory", validate_memory),
    ValidationStage("devices", validate_device_policy),
)


def validate(definition: DomainDefinition, driver: "DriverContext") -> None:
    """Run every validation stage in order, stopping at the first failure."""
    for stage in VALIDATION_STAGES:
        logger.debug(f"Validating {definition.name}: {stage.name}")
        stage.check(definition, driver)


def prepare_definition(definition: DomainDefinition, driver: "DriverContext") -> DomainDefinition:
    """Run all three phases on a freshly parsed definition."""
    post_parse_basic(definition, driver.settings)
    post_parse(definition, driver)
    validate(definition, driver)
    return definition

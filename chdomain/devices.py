"""Device policy for the Cloud Hypervisor driver.

Cloud Hypervisor emulates a small, fixed set of virtio devices. Every
device in a definition is checked against an allow-list, and the
definition as a whole may carry at most one console and one serial
port, each backed by a pty or a unix socket.
"""

from __future__ import annotations

import logging

from chdomain.errors import (
    DeviceMultiplicityError,
    InternalInconsistencyError,
    UnsupportedDeviceKindError,
    UnsupportedTransportError,
)
from chdomain.schemas import (
    CharDevice,
    ChrDeviceRole,
    ChrSourceType,
    DeviceKind,
    DomainDefinition,
    DomainDevice,
)

logger = logging.getLogger(__name__)

SUPPORTED_DEVICE_KINDS = frozenset({
    DeviceKind.DISK,
    DeviceKind.NET,
    DeviceKind.MEMORY,
    DeviceKind.VSOCK,
    DeviceKind.CONTROLLER,
    DeviceKind.CHR,
})

UNSUPPORTED_DEVICE_KINDS = frozenset({
    DeviceKind.LEASE,
    DeviceKind.FS,
    DeviceKind.INPUT,
    DeviceKind.SOUND,
    DeviceKind.VIDEO,
    DeviceKind.HOSTDEV,
    DeviceKind.WATCHDOG,
    DeviceKind.GRAPHICS,
    DeviceKind.HUB,
    DeviceKind.REDIRDEV,
    DeviceKind.SMARTCARD,
    DeviceKind.MEMBALLOON,
    DeviceKind.NVRAM,
    DeviceKind.RNG,
    DeviceKind.SHMEM,
    DeviceKind.TPM,
    DeviceKind.PANIC,
    DeviceKind.IOMMU,
    DeviceKind.AUDIO,
    DeviceKind.CRYPTO,
})

ALLOWED_CHR_TRANSPORTS = frozenset({ChrSourceType.PTY, ChrSourceType.UNIX})


def validate_device(device: DomainDevice, definition: DomainDefinition) -> None:
    """Check a single device against the supported kinds.

    Raises:
        UnsupportedDeviceKindError: Known kind that CH cannot provide
        InternalInconsistencyError: The "none" kind or an unknown kind
    """
    try:
        kind = DeviceKind(device.kind)
    except ValueError:
        logger.error(
            f"Domain {definition.name} carries device of unknown kind {device.kind!r}"
        )
        raise InternalInconsistencyError(
            f"Unexpected device kind {device.kind!r}"
        ) from None

    if kind in SUPPORTED_DEVICE_KINDS:
        return
    if kind in UNSUPPORTED_DEVICE_KINDS:
        raise UnsupportedDeviceKindError(kind.value)

    logger.error(f"Domain {definition.name} carries a device of kind 'none'")
    raise InternalInconsistencyError("unexpected device kind 'none'")


def _check_char_transport(role: ChrDeviceRole, devices: list[CharDevice]) -> None:
    if devices and devices[0].source_type not in ALLOWED_CHR_TRANSPORTS:
        raise UnsupportedTransportError(role.value, devices[0].source_type.value)


def validate_char_devices(definition: DomainDefinition) -> None:
    """Enforce the definition-wide console and serial constraints.

    Multiplicity is checked for both roles before any transport.
    """
    consoles = definition.consoles
    serials = definition.serials

    if len(consoles) > 1:
        raise DeviceMultiplicityError(ChrDeviceRole.CONSOLE.value, len(consoles))
    if len(serials) > 1:
        raise DeviceMultiplicityError(ChrDeviceRole.SERIAL.value, len(serials))

    _check_char_transport(ChrDeviceRole.CONSOLE, consoles)
    _check_char_transport(ChrDeviceRole.SERIAL, serials)


def validate_devices(definition: DomainDefinition) -> None:
    """Validate every device, then the definition-wide constraints."""
    for device in definition.devices:
        validate_device(device, definition)
    validate_char_devices(definition)

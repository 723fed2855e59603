"""Parse libvirt-style domain XML into a DomainDefinition.

Only the parts of the document the Cloud Hypervisor driver acts on are
read. Device elements are kept even when the driver cannot provide them
so that validation can report them by kind.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from pydantic import ValidationError

from chdomain.errors import DefinitionParseError
from chdomain.schemas import (
    CharDevice,
    ChrDeviceRole,
    ChrSourceType,
    CpuDef,
    CpuMode,
    DeviceKind,
    DomainDefinition,
    DomainDevice,
    HugepageRequest,
    MemoryDevice,
    MemoryTunables,
    OsDef,
)

logger = logging.getLogger(__name__)

_UNIT_SCALE = {
    "b": 1,
    "bytes": 1,
    "kb": 1000,
    "k": 1024,
    "kib": 1024,
    "mb": 1000 ** 2,
    "m": 1024 ** 2,
    "mib": 1024 ** 2,
    "gb": 1000 ** 3,
    "g": 1024 ** 3,
    "gib": 1024 ** 3,
    "tb": 1000 ** 4,
    "t": 1024 ** 4,
    "tib": 1024 ** 4,
    "pb": 1000 ** 5,
    "p": 1024 ** 5,
    "pib": 1024 ** 5,
    "eb": 1000 ** 6,
    "e": 1024 ** 6,
    "eib": 1024 ** 6,
}

# Element name under <devices> -> device kind
_DEVICE_TAGS = {
    "disk": DeviceKind.DISK,
    "lease": DeviceKind.LEASE,
    "filesystem": DeviceKind.FS,
    "interface": DeviceKind.NET,
    "input": DeviceKind.INPUT,
    "sound": DeviceKind.SOUND,
    "video": DeviceKind.VIDEO,
    "hostdev": DeviceKind.HOSTDEV,
    "watchdog": DeviceKind.WATCHDOG,
    "controller": DeviceKind.CONTROLLER,
    "graphics": DeviceKind.GRAPHICS,
    "hub": DeviceKind.HUB,
    "redirdev": DeviceKind.REDIRDEV,
    "smartcard": DeviceKind.SMARTCARD,
    "memballoon": DeviceKind.MEMBALLOON,
    "nvram": DeviceKind.NVRAM,
    "rng": DeviceKind.RNG,
    "shmem": DeviceKind.SHMEM,
    "tpm": DeviceKind.TPM,
    "panic": DeviceKind.PANIC,
    "memory": DeviceKind.MEMORY,
    "iommu": DeviceKind.IOMMU,
    "vsock": DeviceKind.VSOCK,
    "audio": DeviceKind.AUDIO,
    "crypto": DeviceKind.CRYPTO,
}

_CHR_TAGS = {role.value: role for role in ChrDeviceRole}


def parse_scaled(value: str | None, unit: str | None, default_unit: str = "KiB") -> int:
    """Convert a libvirt scaled integer to bytes."""
    if value is None or not value.strip():
        raise DefinitionParseError("missing size value")
    unit_key = (unit or default_unit).strip().lower()
    scale = _UNIT_SCALE.get(unit_key)
    if scale is None:
        raise DefinitionParseError(f"unknown size unit '{unit}'")
    try:
        number = int(value.strip())
    except ValueError:
        raise DefinitionParseError(f"invalid size value '{value}'") from None
    if number < 0:
        raise DefinitionParseError(f"negative size value '{value}'")
    return number * scale


def _element_size(elem: ET.Element | None, default_unit: str = "KiB") -> int:
    if elem is None:
        raise DefinitionParseError("missing size element")
    return parse_scaled(elem.text, elem.get("unit"), default_unit)


def _parse_int(value: str | None, what: str) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        raise DefinitionParseError(f"invalid {what} '{value}'") from None


def _parse_alias(elem: ET.Element) -> str | None:
    alias = elem.find("alias")
    return alias.get("name") if alias is not None else None


def _parse_char_device(elem: ET.Element) -> CharDevice:
    role = _CHR_TAGS[elem.tag]
    source_type = elem.get("type", ChrSourceType.PTY.value)
    try:
        source = ChrSourceType(source_type)
    except ValueError:
        raise DefinitionParseError(
            f"unknown {role.value} source type '{source_type}'"
        ) from None

    source_elem = elem.find("source")
    target_elem = elem.find("target")
    target_port = None
    if target_elem is not None and target_elem.get("port") is not None:
        target_port = _parse_int(target_elem.get("port"), f"{role.value} target port")

    return CharDevice(
        role=role,
        source_type=source,
        source_path=source_elem.get("path") if source_elem is not None else None,
        target_port=target_port,
        alias=_parse_alias(elem),
    )


def _parse_memory_device(elem: ET.Element) -> MemoryDevice:
    size_elem = elem.find("target/size")
    return MemoryDevice(
        model=elem.get("model", "dimm"),
        size=_element_size(size_elem) if size_elem is not None else 0,
        alias=_parse_alias(elem),
    )


def _parse_devices(devices_elem: ET.Element | None) -> tuple[str | None, list[DomainDevice]]:
    emulator: str | None = None
    devices: list[DomainDevice] = []
    if devices_elem is None:
        return emulator, devices

    for elem in devices_elem:
        if elem.tag == "emulator":
            emulator = (elem.text or "").strip() or None
        elif elem.tag in _CHR_TAGS:
            devices.append(_parse_char_device(elem))
        elif elem.tag == "memory":
            devices.append(_parse_memory_device(elem))
        elif elem.tag == "memballoon" and elem.get("model") == "none":
            # Explicitly no balloon device
            continue
        elif elem.tag in _DEVICE_TAGS:
            devices.append(
                DomainDevice(kind=_DEVICE_TAGS[elem.tag].value, alias=_parse_alias(elem))
            )
        else:
            logger.debug(f"Ignoring unknown device element <{elem.tag}>")
    return emulator, devices


def _parse_memory(root: ET.Element) -> MemoryTunables:
    memory_elem = root.find("memory")
    if memory_elem is None:
        raise DefinitionParseError("missing <memory> element")

    hugepages: list[HugepageRequest] = []
    nosharepages = False
    backing = root.find("memoryBacking")
    if backing is not None:
        nosharepages = backing.find("nosharepages") is not None
        hugepages_elem = backing.find("hugepages")
        if hugepages_elem is not None:
            for page in hugepages_elem.findall("page"):
                hugepages.append(HugepageRequest(
                    size=parse_scaled(page.get("size"), page.get("unit")),
                    nodeset=page.get("nodeset"),
                ))
            if not hugepages:
                # Bare <hugepages/>: one request at the default size
                hugepages.append(HugepageRequest())

    return MemoryTunables(
        total_memory=_element_size(memory_elem),
        hugepages=hugepages,
        nosharepages=nosharepages,
    )


def _parse_cpu(root: ET.Element) -> CpuDef | None:
    cpu_elem = root.find("cpu")
    if cpu_elem is None:
        return None
    mode = cpu_elem.get("mode", CpuMode.CUSTOM.value)
    try:
        cpu_mode = CpuMode(mode)
    except ValueError:
        raise DefinitionParseError(f"unknown CPU mode '{mode}'") from None
    model_elem = cpu_elem.find("model")
    model = model_elem.text.strip() if model_elem is not None and model_elem.text else None
    return CpuDef(mode=cpu_mode, model=model)


def parse_domain_xml(xml: str) -> DomainDefinition:
    """Parse a <domain> document.

    Raises:
        DefinitionParseError: Malformed XML or missing/invalid elements
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise DefinitionParseError(f"malformed domain XML: {e}") from e

    if root.tag != "domain":
        raise DefinitionParseError(f"expected <domain> root element, got <{root.tag}>")

    name = (root.findtext("name") or "").strip()
    if not name:
        raise DefinitionParseError("missing domain name")

    try:
        return _build_definition(root, name)
    except ValidationError as e:
        raise DefinitionParseError(f"invalid domain definition: {e}") from e


def _build_definition(root: ET.Element, name: str) -> DomainDefinition:
    vcpu_elem = root.find("vcpu")
    max_vcpus = _parse_int(vcpu_elem.text, "vcpu count") if vcpu_elem is not None else 1
    current_vcpus = None
    if vcpu_elem is not None and vcpu_elem.get("current") is not None:
        current_vcpus = _parse_int(vcpu_elem.get("current"), "current vcpu count")

    os_type_elem = root.find("os/type")
    os_def = OsDef()
    if os_type_elem is not None:
        os_def = OsDef(
            type=(os_type_elem.text or "hvm").strip(),
            arch=os_type_elem.get("arch"),
        )

    emulator, devices = _parse_devices(root.find("devices"))

    fields = {
        "name": name,
        "virt_type": root.get("type", "kvm"),
        "os": os_def,
        "emulator": emulator,
        "max_vcpus": max_vcpus,
        "current_vcpus": current_vcpus,
        "cpu": _parse_cpu(root),
        "memory": _parse_memory(root),
        "devices": devices,
    }
    uuid = (root.findtext("uuid") or "").strip()
    if uuid:
        fields["uuid"] = uuid
    if root.get("id") is not None:
        fields["id"] = _parse_int(root.get("id"), "domain id")

    return DomainDefinition(**fields)

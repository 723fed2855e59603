"""Domain definition schemas.

These Pydantic models describe a virtual machine in hypervisor-agnostic
terms: CPU mode, vCPU topology, memory tunables and the ordered device
list. Sizes are always bytes.
"""

from __future__ import annotations

import uuid as uuid_mod
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class CpuMode(str, Enum):
    """Guest CPU modes."""
    CUSTOM = "custom"
    HOST_MODEL = "host-model"
    HOST_PASSTHROUGH = "host-passthrough"
    MAXIMUM = "maximum"


class DeviceKind(str, Enum):
    """Device kinds a domain definition can carry."""
    NONE = "none"
    DISK = "disk"
    LEASE = "lease"
    FS = "filesystem"
    NET = "interface"
    INPUT = "input"
    SOUND = "sound"
    VIDEO = "video"
    HOSTDEV = "hostdev"
    WATCHDOG = "watchdog"
    CONTROLLER = "controller"
    GRAPHICS = "graphics"
    HUB = "hub"
    REDIRDEV = "redirdev"
    SMARTCARD = "smartcard"
    CHR = "chr"
    MEMBALLOON = "memballoon"
    NVRAM = "nvram"
    RNG = "rng"
    SHMEM = "shmem"
    TPM = "tpm"
    PANIC = "panic"
    MEMORY = "memory"
    IOMMU = "iommu"
    VSOCK = "vsock"
    AUDIO = "audio"
    CRYPTO = "crypto"


class ChrDeviceRole(str, Enum):
    """Where a character device is attached in the guest."""
    PARALLEL = "parallel"
    SERIAL = "serial"
    CONSOLE = "console"
    CHANNEL = "channel"


class ChrSourceType(str, Enum):
    """Host side transport of a character device."""
    NULL = "null"
    VC = "vc"
    PTY = "pty"
    DEV = "dev"
    FILE = "file"
    PIPE = "pipe"
    STDIO = "stdio"
    UDP = "udp"
    TCP = "tcp"
    UNIX = "unix"
    SPICEVMC = "spicevmc"
    SPICEPORT = "spiceport"
    NMDM = "nmdm"
    QEMU_VDAGENT = "qemu-vdagent"
    DBUS = "dbus"


# --- Devices ---

class DomainDevice(BaseModel):
    """A device entry in a domain definition.

    ``kind`` is kept as a plain string so that values outside
    DeviceKind survive parsing and can be reported by the device
    policy instead of failing model construction.
    """
    kind: str
    alias: str | None = None


class CharDevice(DomainDevice):
    """Console, serial, channel or parallel port."""
    kind: str = DeviceKind.CHR.value
    role: ChrDeviceRole
    source_type: ChrSourceType = ChrSourceType.PTY
    source_path: str | None = None
    target_port: int | None = None


class MemoryDevice(DomainDevice):
    """Hotpluggable memory module (dimm, virtio-mem, ...)."""
    kind: str = DeviceKind.MEMORY.value
    model: str = "dimm"
    size: int = Field(default=0, ge=0)


# --- Memory / CPU / OS ---

# Size of a hugepage request that did not name one (bare <hugepages/>)
DEFAULT_HUGEPAGE_SIZE = 0


class HugepageRequest(BaseModel):
    """Request to back guest memory with pages of a given size.

    A size of DEFAULT_HUGEPAGE_SIZE asks for the host's default hugepage
    size, which the driver does not resolve.
    """
    size: int = Field(default=DEFAULT_HUGEPAGE_SIZE, ge=0)
    nodeset: str | None = None


class MemoryTunables(BaseModel):
    """Memory sizing and backing."""
    total_memory: int = Field(ge=0)
    hugepages: list[HugepageRequest] = Field(default_factory=list)
    nosharepages: bool = False

    @property
    def hugepage_sizes(self) -> list[int]:
        """Distinct requested hugepage sizes, ascending."""
        return sorted({page.size for page in self.hugepages})


class CpuDef(BaseModel):
    """Guest CPU model selection."""
    mode: CpuMode = CpuMode.CUSTOM
    model: str | None = None


class OsDef(BaseModel):
    """Guest OS type and architecture."""
    type: str = "hvm"
    arch: str | None = None


# --- Domain ---

class DomainDefinition(BaseModel):
    """Portable description of a virtual machine."""
    name: str
    uuid: str = Field(default_factory=lambda: str(uuid_mod.uuid4()))
    id: int = -1  # -1 while inactive
    virt_type: str = "kvm"
    os: OsDef = Field(default_factory=OsDef)
    emulator: str | None = None
    max_vcpus: int = Field(default=1, ge=1)
    current_vcpus: int | None = None
    cpu: CpuDef | None = None
    memory: MemoryTunables
    devices: list[DomainDevice] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_vcpus(self) -> "DomainDefinition":
        if self.current_vcpus is not None and not 1 <= self.current_vcpus <= self.max_vcpus:
            raise ValueError(
                f"current vcpus {self.current_vcpus} must be between 1 and "
                f"maximum vcpus {self.max_vcpus}"
            )
        return self

    def _char_devices(self, role: ChrDeviceRole) -> list[CharDevice]:
        return [
            dev for dev in self.devices
            if isinstance(dev, CharDevice) and dev.role == role
        ]

    @property
    def consoles(self) -> list[CharDevice]:
        return self._char_devices(ChrDeviceRole.CONSOLE)

    @property
    def serials(self) -> list[CharDevice]:
        return self._char_devices(ChrDeviceRole.SERIAL)

    @property
    def initial_memory(self) -> int:
        """Boot memory: total memory minus memory provided by memory devices."""
        plugged = sum(
            dev.size for dev in self.devices if isinstance(dev, MemoryDevice)
        )
        return max(0, self.memory.total_memory - plugged)

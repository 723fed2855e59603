"""Error types raised by domain validation and reconciliation."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error classification exposed to callers."""
    CONFIG_UNSUPPORTED = "config_unsupported"
    UNSUPPORTED_HOST_CAPABILITY = "unsupported_host_capability"
    INSUFFICIENT_HOST_RESOURCES = "insufficient_host_resources"
    UNSUPPORTED_DEVICE_KIND = "unsupported_device_kind"
    UNSUPPORTED_TRANSPORT = "unsupported_transport"
    INTERNAL_ERROR = "internal_error"
    OPERATION_FAILED = "operation_failed"
    NO_DOMAIN = "no_domain"
    XML_ERROR = "xml_error"


class DomainError(Exception):
    """Base exception for domain driver errors."""
    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        retriable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retriable = retriable


class ConfigUnsupportedError(DomainError):
    """The requested configuration can never be honored by this VMM."""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.CONFIG_UNSUPPORTED):
        super().__init__(message, code, retriable=False)


class CpuModeUnsupportedError(ConfigUnsupportedError):
    """A CPU mode other than host-passthrough was requested."""
    def __init__(self, mode: str):
        super().__init__(
            f"CPU mode '{mode}' is not supported, "
            f"'host-passthrough' is the only mode supported by the ch driver"
        )
        self.mode = mode


class DeviceMultiplicityError(ConfigUnsupportedError):
    """More than one console or serial device was configured."""
    def __init__(self, role: str, count: int):
        super().__init__(
            f"Only a single {role} can be configured for this domain, found {count}"
        )
        self.role = role
        self.count = count


class UnsupportedDeviceKindError(ConfigUnsupportedError):
    """The device kind is valid but this VMM cannot emulate it."""
    def __init__(self, kind: str):
        super().__init__(
            f"Cloud-Hypervisor doesn't support '{kind}' device",
            code=ErrorCode.UNSUPPORTED_DEVICE_KIND,
        )
        self.kind = kind


class UnsupportedTransportError(ConfigUnsupportedError):
    """A console or serial device uses a transport other than pty/unix."""
    def __init__(self, role: str, source_type: str):
        super().__init__(
            f"{role.capitalize()} works only in UNIX / PTY modes, got '{source_type}'",
            code=ErrorCode.UNSUPPORTED_TRANSPORT,
        )
        self.role = role
        self.source_type = source_type


class UnsupportedHostCapabilityError(DomainError):
    """The host lacks a capability the definition requires."""
    def __init__(self, message: str, page_size: int | None = None):
        super().__init__(message, ErrorCode.UNSUPPORTED_HOST_CAPABILITY, retriable=True)
        self.page_size = page_size


class InsufficientHostResourcesError(DomainError):
    """The host currently lacks enough free resources for the definition."""
    def __init__(self, page_size: int, pages_needed: int, pages_free: int):
        super().__init__(
            f"Host does not have enough free HugePages of size {page_size} B "
            f"(needed {pages_needed}, free {pages_free})",
            ErrorCode.INSUFFICIENT_HOST_RESOURCES,
            retriable=True,
        )
        self.page_size = page_size
        self.pages_needed = pages_needed
        self.pages_free = pages_free


class InternalInconsistencyError(DomainError):
    """An upstream contract was violated (e.g. an impossible enum value)."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INTERNAL_ERROR, retriable=False)


class HostQueryError(DomainError):
    """Reading host capability data failed."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCode.OPERATION_FAILED, retriable=True)


class MonitorError(DomainError):
    """Querying the running VMM failed."""
    def __init__(self, message: str, pid: int | None = None):
        super().__init__(message, ErrorCode.OPERATION_FAILED, retriable=True)
        self.pid = pid


class ConsoleBusyError(DomainError):
    """A character device already has an active stream."""
    def __init__(self, path: str):
        super().__init__(
            f"Active console session exists for {path}",
            ErrorCode.OPERATION_FAILED,
        )
        self.path = path


class NoDomainError(DomainError):
    """No domain object matches the requested identity."""
    def __init__(self, uuid: str, name: str | None = None):
        super().__init__(
            f"no domain with matching uuid '{uuid}' ({name})",
            ErrorCode.NO_DOMAIN,
        )
        self.uuid = uuid
        self.name = name


class DefinitionParseError(DomainError):
    """A domain definition document could not be parsed."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCode.XML_ERROR)

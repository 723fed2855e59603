"""Driver configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cloud Hypervisor driver settings loaded from environment variables."""

    # Driver identity
    driver_name: str = "ch"
    privileged: bool = True

    # Emulator binary searched on PATH when a definition has none
    ch_command: str = "cloud-hypervisor"

    # Host introspection roots (overridable for tests and containers)
    hugepages_path: str = "/sys/kernel/mm/hugepages"
    proc_path: str = "/proc"
    kvm_device: str = "/dev/kvm"
    mshv_device: str = "/dev/mshv"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "CHDOMAIN_"


settings = Settings()

"""Platform string parsing (os/arch/variant)."""

import platform as _platform

# Map `platform.machine()` values onto OCI architecture names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

NO_VARIANT = "none"


def host_platform() -> tuple[str, str]:
    """Return the host (os, arch) using OCI naming."""
    system = _platform.system().lower() or "linux"
    machine = _platform.machine().lower()
    return system, _ARCH_ALIASES.get(machine, machine or "unknown")


def parse_platform(platform: str | None) -> tuple[str, str, str]:
    """Split a platform string into (os, arch, variant).

    Missing components fall back to the host platform; a missing variant
    becomes "none".

    Args:
        platform: Platform string (e.g., "linux/amd64", "linux/arm/v7") or None

    Returns:
        tuple[str, str, str]: (os, arch, variant)
    """
    host_os, host_arch = host_platform()
    if not platform:
        return host_os, host_arch, NO_VARIANT

    parts = platform.split("/")
    os_name = parts[0] or host_os
    arch = parts[1] if len(parts) > 1 and parts[1] else host_arch
    variant = parts[2] if len(parts) > 2 and parts[2] else NO_VARIANT
    return os_name, arch, variant

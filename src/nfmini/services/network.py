"""Network interface detection for hop rules.

Provides:
- Default-route interface discovery
- First non-loopback link discovery
- Interface resolution (explicit > IFACE > detected > fallback)
"""

import subprocess
from typing import Optional

from nfmini.core.config import DEFAULT_FALLBACK_INTERFACE


def default_route_interface() -> Optional[str]:
    """Interface of the IPv4 default route, if there is one.

    Parses ``ip route show default`` output such as
    ``default via 10.0.0.1 dev eth0 proto dhcp metric 100``.
    """
    try:
        result = subprocess.run(
            ["ip", "route", "show", "default"],
            capture_output=True,
            text=True,
            timeout=5,
        )

        if result.returncode != 0:
            return None

        for line in result.stdout.strip().splitlines():
            parts = line.split()
            if not parts or parts[0] != "default":
                continue
            for i, part in enumerate(parts):
                if part == "dev" and i + 1 < len(parts):
                    return parts[i + 1]

    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass

    return None


def first_link_interface() -> Optional[str]:
    """First non-loopback interface listed by ``ip -o link show``."""
    try:
        result = subprocess.run(
            ["ip", "-o", "link", "show"],
            capture_output=True,
            text=True,
            timeout=5,
        )

        if result.returncode != 0:
            return None

        for line in result.stdout.strip().splitlines():
            # Format: index: name[@parent]: <FLAGS> ...
            parts = line.split(":", 2)
            if len(parts) < 2:
                continue
            name = parts[1].strip().split("@")[0]
            if name and name != "lo":
                return name

    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        pass

    return None


def detect_default_interface(fallback: str = DEFAULT_FALLBACK_INTERFACE) -> str:
    """Best guess at the host's primary interface; never fails."""
    return default_route_interface() or first_link_interface() or fallback


def resolve_interface(
    explicit: Optional[str] = None,
    override: Optional[str] = None,
    fallback: str = DEFAULT_FALLBACK_INTERFACE,
) -> str:
    """Pick the interface a hop rule applies to.

    Args:
        explicit: Interface given on the command line
        override: Interface from the IFACE environment variable
        fallback: Used when detection finds nothing

    Returns:
        Interface name
    """
    for candidate in (explicit, override):
        if candidate and candidate.strip():
            return candidate.strip()
    return detect_default_interface(fallback)

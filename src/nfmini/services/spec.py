"""Port spec parsing.

Spec format::

    PORT[-PORT][/proto][/family]

    50101              => tcp+udp, v4+v6
    50101/tcp          => tcp, v4+v6
    50101/tcp/6        => tcp, v6 only
    51010-51111/udp/4  => udp, v4 only

Validation runs in a fixed order (emptiness, port syntax, port range,
range ordering, tokens) so the same bad input always produces the same
message.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from nfmini.core.exceptions import SpecParseError


MIN_PORT = 1
MAX_PORT = 65535

_PORT_PART_RE = re.compile(r"^(?P<start>[^-]*)(?:-(?P<end>.*))?$")
_WHITESPACE_RE = re.compile(r"\s+")


class Protocol(str, Enum):
    """Transport protocol a spec can match."""
    TCP = "tcp"
    UDP = "udp"


class Family(str, Enum):
    """Address family (one packet filter stack each)."""
    V4 = "4"
    V6 = "6"


ALL_PROTOCOLS = frozenset(Protocol)
ALL_FAMILIES = frozenset(Family)


@dataclass(frozen=True)
class PortSpec:
    """A port or inclusive port range with protocol/family restrictions."""
    start: int
    end: int
    protocols: frozenset[Protocol] = ALL_PROTOCOLS
    families: frozenset[Family] = ALL_FAMILIES
    raw: str = field(default="", compare=False)

    @property
    def is_range(self) -> bool:
        return self.start != self.end

    @property
    def dport(self) -> str:
        """Port argument as iptables expects it (``80`` or ``100:200``)."""
        if self.is_range:
            return f"{self.start}:{self.end}"
        return str(self.start)

    @property
    def ordered_protocols(self) -> list[Protocol]:
        """Protocols in fan-out order (tcp before udp)."""
        return [p for p in Protocol if p in self.protocols]

    @property
    def ordered_families(self) -> list[Family]:
        """Families in fan-out order (v4 before v6)."""
        return [f for f in Family if f in self.families]

    def describe(self) -> str:
        """Short summary used in log lines."""
        protos = ",".join(p.value for p in self.ordered_protocols)
        fams = ",".join(f.value for f in self.ordered_families)
        return f"proto={protos}, fam={fams}"

    def __str__(self) -> str:
        ports = f"{self.start}-{self.end}" if self.is_range else str(self.start)
        parts = [ports]
        if self.protocols != ALL_PROTOCOLS:
            parts.extend(p.value for p in self.ordered_protocols)
        if self.families != ALL_FAMILIES:
            parts.extend(f.value for f in self.ordered_families)
        return "/".join(parts)


@dataclass(frozen=True)
class HopRule:
    """A NAT redirection of ``from_spec`` on ``iface`` to local ``to_port``."""
    to_port: int
    from_spec: PortSpec
    iface: str

    def __str__(self) -> str:
        return f"{self.from_spec.raw or self.from_spec} -> {self.to_port} (iface={self.iface})"


def _parse_port_number(value: str, raw: str, what: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise SpecParseError(f"Invalid {what} in '{raw}'.", spec=raw)
    return int(value)


def parse_spec(raw: str) -> PortSpec:
    """Parse a port spec string.

    Args:
        raw: Spec as typed by the user

    Returns:
        Normalized PortSpec

    Raises:
        SpecParseError: If the spec is malformed; the message quotes ``raw``
    """
    spec = _WHITESPACE_RE.sub("", raw or "")
    if not spec:
        raise SpecParseError("Empty spec.", spec=raw)

    port_part, *tokens = spec.split("/")

    match = _PORT_PART_RE.match(port_part)
    start_text = match.group("start") if match else ""
    end_text = match.group("end") if match else None

    start = _parse_port_number(start_text, raw, "port")
    end = start
    if end_text is not None:
        end = _parse_port_number(end_text, raw, "port range")

    for port in (start, end):
        if not MIN_PORT <= port <= MAX_PORT:
            raise SpecParseError(f"Port out of range in '{raw}'.", spec=raw)

    if start > end:
        raise SpecParseError(f"Range start > end in '{raw}'.", spec=raw)

    if len(tokens) > 2:
        raise SpecParseError(
            f"Too many tokens in '{raw}' (at most one protocol and one family).",
            spec=raw,
        )

    protocol: Optional[Protocol] = None
    family: Optional[Family] = None
    for token in tokens:
        value = token.lower()
        if value in {p.value for p in Protocol}:
            if protocol is not None:
                raise SpecParseError(
                    f"Duplicate protocol token '{token}' in '{raw}'.", spec=raw
                )
            protocol = Protocol(value)
        elif value in {f.value for f in Family}:
            if family is not None:
                raise SpecParseError(
                    f"Duplicate family token '{token}' in '{raw}'.", spec=raw
                )
            family = Family(value)
        else:
            raise SpecParseError(
                f"Unknown token '{token}' in '{raw}' (use tcp/udp and/or 4/6).",
                spec=raw,
            )

    return PortSpec(
        start=start,
        end=end,
        protocols=frozenset({protocol}) if protocol else ALL_PROTOCOLS,
        families=frozenset({family}) if family else ALL_FAMILIES,
        raw=raw,
    )


def parse_port(value: str, name: str = "to_port") -> int:
    """Validate a standalone port argument.

    Raises:
        SpecParseError: If ``value`` is not a number in 1-65535
    """
    text = (value or "").strip()
    if not (text.isascii() and text.isdigit()):
        raise SpecParseError(
            f"Invalid {name} '{value}'.",
            spec=value,
            hint=f"{name} must be a number between {MIN_PORT} and {MAX_PORT}",
        )
    port = int(text)
    if not MIN_PORT <= port <= MAX_PORT:
        raise SpecParseError(
            f"{name} out of range in '{value}'.",
            spec=value,
            hint=f"{name} must be between {MIN_PORT} and {MAX_PORT}",
        )
    return port


def parse_hop_rule(to_port: str, from_spec: str, iface: str) -> HopRule:
    """Validate ``to_port`` and parse ``from_spec`` into a HopRule."""
    port = parse_port(to_port)
    return HopRule(to_port=port, from_spec=parse_spec(from_spec), iface=iface)

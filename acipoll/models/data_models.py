"""Core data models for the fabric poller."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from acipoll.models.errors import NetworkError


class Direction(Enum):
    """Traffic direction of an interface statistics job."""
    INGRESS = "ingress"
    EGRESS = "egress"


@dataclass
class Interface:
    """Physical interface discovered under a fabric node."""
    id: str  # e.g. "eth1/2/3"
    usage: str = ""
    admin_state: str = ""
    description: Optional[str] = None
    ingress: Dict[str, str] = field(default_factory=dict)
    egress: Dict[str, str] = field(default_factory=dict)

    @property
    def is_up(self) -> bool:
        return self.admin_state == "up"

    @property
    def safe_id(self) -> str:
        """Identifier with path separators replaced, usable as a file-safe key."""
        from acipoll.processor.normalizer import sanitize_interface_id
        return sanitize_interface_id(self.id)

    @property
    def has_stats(self) -> bool:
        return bool(self.ingress) or bool(self.egress)


@dataclass
class FabricNode:
    """Leaf or spine switch registered with a controller."""
    id: str
    dn: str
    role: str = ""
    fabric_state: str = ""
    interfaces: List[Interface] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.fabric_state == "active"


@dataclass
class Fault:
    """Fault instance as reported by the controller. Read-only once retrieved."""
    attributes: Dict[str, str]

    @property
    def severity(self) -> str:
        return self.attributes.get("severity", "")

    @property
    def normalized_severity(self) -> str:
        from acipoll.processor.normalizer import normalize_severity
        return normalize_severity(self.severity)


@dataclass
class CapacityEntity:
    """Capacity counter object (e.g. policer CAM usage) for one node."""
    class_name: str
    attributes: Dict[str, str]
    node_dn: str  # DN reduced to its node component, e.g. "node-101"


@dataclass
class ControllerSession:
    """
    Authentication state for one controller, obtained once per run.

    Passed explicitly into every request that needs it instead of relying
    on the HTTP client's cookie jar.
    """
    controller_name: str
    token: str
    cookie_name: str = "APIC-cookie"
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def headers(self) -> Dict[str, str]:
        return {"Cookie": f"{self.cookie_name}={self.token}"}


@dataclass
class Controller:
    """One polled controller and everything discovered under it."""
    name: str
    address: str
    hostname: Optional[str] = None
    session: Optional[ControllerSession] = None
    node_id: Optional[str] = None
    faults: List[Fault] = field(default_factory=list)
    nodes: List[FabricNode] = field(default_factory=list)
    capacity: List[CapacityEntity] = field(default_factory=list)

    @property
    def display_host(self) -> str:
        return self.hostname or self.address


class AggregationKey(NamedTuple):
    """Routes a completed StatJob result into its Interface."""
    controller_name: str
    node_id: str
    interface_id: str


@dataclass(frozen=True)
class StatJob:
    """One ingress or egress statistics fetch for a single interface."""
    controller: str
    node_id: str
    node_dn: str
    interface_id: str
    direction: Direction

    @property
    def key(self) -> AggregationKey:
        return AggregationKey(self.controller, self.node_id, self.interface_id)


@dataclass
class FetchResult:
    """Outcome of a single HTTP Task."""
    url: str
    success: bool
    status_code: Optional[int] = None
    text: str = ""
    error: Optional[NetworkError] = None
    duration: float = 0.0


@dataclass
class QueueStats:
    """Per-controller statistics of a Bounded Job Queue drain."""
    controller: str
    scheduled: int = 0
    attempted: int = 0
    failed: int = 0
    max_in_flight: int = 0


@dataclass
class ControllerSummary:
    """Per-controller result of one poll run."""
    name: str
    logged_in: bool
    node_id: Optional[str]
    nodes: int
    interfaces: int
    faults: int
    events_sent: int = 0
    jobs_scheduled: int = 0
    jobs_failed: int = 0
    interfaces_written: int = 0
    output_files: List[str] = field(default_factory=list)


@dataclass
class PollResult:
    """Complete poll run result."""
    controllers: List[ControllerSummary]
    duration_seconds: float

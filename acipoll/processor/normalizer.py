"""Parsing and normalization of controller and monitoring-system responses.

Controllers answer with an ``<imdata>`` document whose children are managed
objects carrying their properties as XML attributes. The helpers here turn
those documents into the data model and hold the small pure normalizations
(severity, identifiers, distinguished names) used by the writers.
"""

import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from acipoll.models.data_models import CapacityEntity, FabricNode, Fault, Interface

# Properties describing the sample itself rather than the measured values
STAT_BOOKKEEPING = frozenset({
    "dn", "rn", "status", "childAction", "modTs",
    "repIntvStart", "repIntvEnd", "cnt", "lastCollOffset",
})

_NODE_COMPONENT = re.compile(r"node-\d+")


def normalize_severity(severity: str) -> str:
    """
    Map a controller severity onto the monitoring system's vocabulary.

    ``info`` becomes ``Normal``; any other value is lower-cased and
    capitalized. Input case does not matter.

    Examples:
        >>> normalize_severity("info")
        'Normal'
        >>> normalize_severity("CRITICAL")
        'Critical'
    """
    value = (severity or "").strip().lower()
    if value == "info":
        return "Normal"
    return value.capitalize()


def sanitize_interface_id(interface_id: str) -> str:
    """Replace path separators so ``eth1/2/3`` becomes ``eth1-2-3``."""
    return interface_id.replace("/", "-")


def node_component(dn: str) -> str:
    """
    Reduce a distinguished name to its node component.

    ``topology/pod-1/node-101/sys/eqptcapacity/polUsage5min`` -> ``node-101``.
    A DN without a node component is returned unchanged.
    """
    match = _NODE_COMPONENT.search(dn or "")
    return match.group(0) if match else dn


def parse_imdata(text: str) -> List[Tuple[str, Dict[str, str]]]:
    """
    Parse an ``<imdata>`` document into (class name, attributes) pairs.

    Raises:
        ValueError: If the document is not well-formed XML
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ValueError(f"malformed XML response: {e}")
    return [(child.tag, dict(child.attrib)) for child in root]


def parse_login_token(text: str) -> Optional[str]:
    for class_name, attrs in parse_imdata(text):
        if class_name == "aaaLogin":
            return attrs.get("token") or None
    return None


def parse_fabric_nodes(text: str) -> List[FabricNode]:
    nodes = []
    for class_name, attrs in parse_imdata(text):
        if class_name != "fabricNode":
            continue
        nodes.append(FabricNode(
            id=attrs.get("id", ""),
            dn=attrs.get("dn", ""),
            role=attrs.get("role", ""),
            fabric_state=attrs.get("fabricSt", ""),
        ))
    return nodes


def parse_interfaces(text: str) -> List[Interface]:
    interfaces = []
    for class_name, attrs in parse_imdata(text):
        if class_name != "l1PhysIf":
            continue
        interfaces.append(Interface(
            id=attrs.get("id", ""),
            usage=attrs.get("usage", ""),
            admin_state=attrs.get("adminSt", ""),
            description=attrs.get("descr") or None,
        ))
    return interfaces


def parse_faults(text: str) -> List[Fault]:
    return [
        Fault(attributes=attrs)
        for class_name, attrs in parse_imdata(text)
        if class_name == "faultInst"
    ]


def parse_capacity(text: str, class_name: str) -> List[CapacityEntity]:
    entities = []
    for found_class, attrs in parse_imdata(text):
        if found_class != class_name:
            continue
        node_dn = node_component(attrs.get("dn", ""))
        attrs["dn"] = node_dn
        entities.append(CapacityEntity(class_name=found_class, attributes=attrs, node_dn=node_dn))
    return entities


def parse_stats(text: str) -> Dict[str, str]:
    """
    Extract counter values from a statistics response.

    Only the first managed object is used; bookkeeping properties are
    dropped. An empty document yields an empty mapping.
    """
    objects = parse_imdata(text)
    if not objects:
        return {}
    _, attrs = objects[0]
    return {name: value for name, value in attrs.items() if name not in STAT_BOOKKEEPING}


def parse_monitoring_node_id(text: str) -> Optional[str]:
    """Return the ``id`` of the first ``<node>`` in a node query result."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ValueError(f"malformed XML response: {e}")
    node = root if root.tag == "node" else root.find("node")
    if node is None:
        return None
    return node.get("id") or None

"""FastAPI mock controller and monitoring system for local runs and tests."""

import asyncio
import os
import re
import xml.etree.ElementTree as ET
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from fastapi import APIRouter, FastAPI, Request, Response

XML_MEDIA_TYPE = "application/xml"

_STATS_PATH = re.compile(r"^(?P<node_dn>.+?)/sys/phys-\[(?P<interface>.+)\]/(?P<stat_class>\w+)\.xml$")
_CLASS_PATH = re.compile(r"^(?P<node_dn>.+)/(?P<class_name>\w+)\.xml$")

StatKey = Tuple[str, str, str]  # (node dn, interface id, stat class)


def imdata(class_name: str, items: Iterable[Mapping[str, str]]) -> str:
    """Render managed objects as an ``<imdata>`` document."""
    items = list(items)
    root = ET.Element("imdata", totalCount=str(len(items)))
    for attrs in items:
        ET.SubElement(root, class_name, {k: str(v) for k, v in attrs.items()})
    return ET.tostring(root, encoding="unicode")


def _error(status_code: int, text: str) -> Response:
    body = imdata("error", [{"code": str(status_code), "text": text}])
    return Response(content=body, status_code=status_code, media_type=XML_MEDIA_TYPE)


def _xml(body: str) -> Response:
    return Response(content=body, media_type=XML_MEDIA_TYPE)


def default_stats(node_dn: str, interface_id: str, stat_class: str) -> Dict[str, str]:
    """Deterministic counters, including the bookkeeping the poller drops."""
    seed = sum(ord(c) for c in f"{node_dn}{interface_id}{stat_class}")
    return {
        "dn": f"{node_dn}/sys/phys-[{interface_id}]/{stat_class}",
        "bytesRate": f"{seed * 10.5:.3f}",
        "pktsRate": f"{seed / 7:.3f}",
        "utilAvg": str(seed % 100),
        "repIntvStart": "2026-01-01T00:00:00.000+00:00",
        "repIntvEnd": "2026-01-01T00:05:00.000+00:00",
        "cnt": "10",
    }


def monitoring_router(node_ids: Mapping[str, str]) -> APIRouter:
    """Node query endpoint of the monitoring system."""
    router = APIRouter()

    @router.get("/opennms/rest/nodes")
    async def query_nodes(label: str = ""):
        nodes = ET.Element("nodes")
        node_id = node_ids.get(label)
        if node_id is not None:
            ET.SubElement(nodes, "node", id=node_id, label=label)
        nodes.set("count", str(len(nodes)))
        return _xml(ET.tostring(nodes, encoding="unicode"))

    return router


def create_mock_monitoring(node_ids: Mapping[str, str]) -> FastAPI:
    app = FastAPI(title="Mock monitoring system")
    app.include_router(monitoring_router(node_ids))
    return app


def create_mock_apic(
    name: str,
    nodes: Optional[List[Dict[str, str]]] = None,
    interfaces: Optional[Dict[str, List[Dict[str, str]]]] = None,
    faults: Optional[List[Dict[str, str]]] = None,
    capacity: Optional[List[Dict[str, str]]] = None,
    stats: Optional[Dict[StatKey, Dict[str, str]]] = None,
    failing_stats: Optional[Set[StatKey]] = None,
    capacity_class: str = "eqptcapacityPolUsage5min",
    username: Optional[str] = None,
    password: Optional[str] = None,
    token: str = "mock-token",
    latency_ms: int = 0,
    node_ids: Optional[Mapping[str, str]] = None
) -> FastAPI:
    """
    Create a mock controller serving XML like an APIC.

    Args:
        name: Controller name (reported by /health)
        nodes: fabricNode attribute sets
        interfaces: l1PhysIf attribute sets keyed by node DN
        faults: faultInst attribute sets
        capacity: capacity object attribute sets
        stats: Counters keyed by (node DN, interface id, stat class);
            missing keys fall back to default_stats()
        failing_stats: Keys answered with HTTP 500
        capacity_class: Class name served for capacity queries
        username: Required login user, None accepts any
        password: Required login password, None accepts any
        token: Session token issued on login
        latency_ms: Delay added to every statistics response
        node_ids: When given, also serve the monitoring node query

    Returns:
        FastAPI application. ``app.state.stats_in_flight`` and
        ``app.state.max_stats_in_flight`` track concurrent statistics
        requests; ``app.state.requests`` lists every request path.
    """
    app = FastAPI(title=f"Mock APIC - {name}")
    app.state.stats_in_flight = 0
    app.state.max_stats_in_flight = 0
    app.state.requests = []

    nodes = nodes or []
    interfaces = interfaces or {}
    faults = faults or []
    capacity = capacity or []
    stats = stats or {}
    failing_stats = failing_stats or set()

    def authorized(request: Request) -> bool:
        return request.cookies.get("APIC-cookie") == token

    @app.middleware("http")
    async def record_request(request: Request, call_next):
        app.state.requests.append(request.url.path)
        return await call_next(request)

    @app.post("/api/aaaLogin.xml")
    async def login(request: Request):
        body = await request.json()
        attrs = body.get("aaaUser", {}).get("attributes", {})
        if username is not None and attrs.get("name") != username:
            return _error(401, "Username or password is incorrect")
        if password is not None and attrs.get("pwd") != password:
            return _error(401, "Username or password is incorrect")
        return _xml(imdata("aaaLogin", [{"token": token, "userName": attrs.get("name", "")}]))

    @app.get("/api/class/{class_file}")
    async def class_query(class_file: str, request: Request):
        if not authorized(request):
            return _error(403, "Token was invalid")
        class_name = class_file[:-4] if class_file.endswith(".xml") else class_file

        if class_name == "fabricNode":
            return _xml(imdata("fabricNode", nodes))
        if class_name == "faultInst":
            selected = faults
            query_filter = request.query_params.get("query-target-filter", "")
            if '"cleared"' in query_filter and query_filter.startswith("ne("):
                selected = [f for f in faults if f.get("severity") != "cleared"]
            return _xml(imdata("faultInst", selected))
        if class_name == capacity_class:
            return _xml(imdata(capacity_class, capacity))
        return _xml(imdata(class_name, []))

    @app.get("/api/node/class/{path:path}")
    async def node_class_query(path: str, request: Request):
        if not authorized(request):
            return _error(403, "Token was invalid")
        match = _CLASS_PATH.match(path)
        if not match or match.group("class_name") != "l1PhysIf":
            return _error(400, f"unsupported query {path}")
        return _xml(imdata("l1PhysIf", interfaces.get(match.group("node_dn"), [])))

    @app.get("/api/node/mo/{path:path}")
    async def stats_query(path: str, request: Request):
        if not authorized(request):
            return _error(403, "Token was invalid")
        match = _STATS_PATH.match(path)
        if not match:
            return _error(400, f"unsupported object {path}")
        key = (match.group("node_dn"), match.group("interface"), match.group("stat_class"))

        app.state.stats_in_flight += 1
        app.state.max_stats_in_flight = max(app.state.max_stats_in_flight, app.state.stats_in_flight)
        try:
            if latency_ms > 0:
                await asyncio.sleep(latency_ms / 1000.0)
            if key in failing_stats:
                return _error(500, "Simulated error")
            counters = stats.get(key) or default_stats(*key)
            # CD-prefixed stat classes answer with the underlying class
            return _xml(imdata(key[2][2:], [counters]))
        finally:
            app.state.stats_in_flight -= 1

    @app.get("/health")
    async def health():
        return {"status": "healthy", "server": name}

    if node_ids is not None:
        app.include_router(monitoring_router(node_ids))

    return app


def default_fabric(leaves: int = 2, ports: int = 8) -> Dict:
    """
    Build a small fabric: ``leaves`` active leaves, one inactive leaf,
    ``ports`` interfaces per leaf with every fourth one admin-down.
    """
    nodes = []
    interfaces: Dict[str, List[Dict[str, str]]] = {}
    capacity = []
    for index in range(leaves + 1):
        node_id = str(101 + index)
        dn = f"topology/pod-1/node-{node_id}"
        active = index < leaves
        nodes.append({
            "id": node_id,
            "dn": dn,
            "role": "leaf",
            "name": f"leaf{node_id}",
            "fabricSt": "active" if active else "inactive",
        })
        interfaces[dn] = [
            {
                "id": f"eth1/{port}",
                "dn": f"{dn}/sys/phys-[eth1/{port}]",
                "usage": "fabric" if port == ports else "epg",
                "adminSt": "down" if port % 4 == 0 else "up",
                "descr": f"port {port} on leaf{node_id}" if port % 2 else "",
            }
            for port in range(1, ports + 1)
        ]
        capacity.append({
            "dn": f"{dn}/sys/eqptcapacity/polUsage5min",
            "polUsageCum": str(100 * (index + 1)),
            "polUsageCapCum": "4096",
        })
    faults = [
        {"code": "F0532", "severity": "warning", "dn": f"{nodes[0]['dn']}/sys/phys-[eth1/2]/fault-F0532",
         "descr": "Port is down, reason: sfp-missing", "cause": "interface-physical-down"},
        {"code": "F1394", "severity": "info", "dn": f"{nodes[0]['dn']}/sys/fault-F1394",
         "descr": "Informational fault", "cause": "ethpm-if-port-down-infra-epg"},
        {"code": "F0103", "severity": "cleared", "dn": f"{nodes[0]['dn']}/sys/fault-F0103",
         "descr": "Cleared fault", "cause": "equipment-psu-missing"},
    ]
    return {"nodes": nodes, "interfaces": interfaces, "capacity": capacity, "faults": faults}


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Reads CONTROLLER_NAME, MOCK_LEAVES, MOCK_PORTS, EXTRA_LATENCY_MS and
    MONITORING_NODE_ID from the environment.
    """
    controller = os.getenv("CONTROLLER_NAME", "apic1")
    fabric = default_fabric(
        leaves=int(os.getenv("MOCK_LEAVES", 2)),
        ports=int(os.getenv("MOCK_PORTS", 8))
    )
    return create_mock_apic(
        name=controller,
        latency_ms=int(os.getenv("EXTRA_LATENCY_MS", 0)),
        node_ids={controller: os.getenv("MONITORING_NODE_ID", "1")},
        **fabric
    )

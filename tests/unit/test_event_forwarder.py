"""Unit tests for fault event rendering and TCP forwarding."""

import asyncio
import socket
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest

from acipoll.models.data_models import Controller, Fault
from acipoll.pipeline.events import EventForwarder, format_event_time

FIXED_TIME = datetime(2026, 3, 5, 14, 7, 9, tzinfo=timezone.utc)


@pytest.fixture
def controller():
    return Controller(name="apic1", address="10.0.0.1", hostname="apic1.example.net", node_id="42")


@pytest.fixture
def forwarder():
    return EventForwarder(host="127.0.0.1", port=5817, now=lambda: FIXED_TIME)


def test_format_event_time():
    assert format_event_time(FIXED_TIME) == "Thursday, 05 March 2026 14:07:09 o'clock UTC"


def test_render_event(forwarder, controller):
    fault = Fault(attributes={"severity": "major", "code": "F0532", "descr": "Port is down"})

    root = ET.fromstring(forwarder.render(fault, controller))

    event = root.find("events/event")
    assert root.tag == "log"
    assert event.findtext("uei") == "uei.opennms.org/vendor/cisco/aci/fault"
    assert event.findtext("source") == "acipoll"
    assert event.findtext("nodeid") == "42"
    assert event.findtext("host") == "apic1.example.net"
    assert event.findtext("time") == "Thursday, 05 March 2026 14:07:09 o'clock UTC"
    assert event.findtext("severity") == "Major"

    parms = event.findall("parms/parm")
    assert [p.findtext("parmName") for p in parms] == ["code", "descr", "severity"]
    value = parms[0].find("value")
    assert value.text == "F0532"
    assert value.get("type") == "string"
    assert value.get("encoding") == "text"


def test_info_severity_maps_to_normal(forwarder, controller):
    root = ET.fromstring(forwarder.render(Fault(attributes={"severity": "info"}), controller))
    assert root.findtext("events/event/severity") == "Normal"


def test_host_falls_back_to_address(forwarder):
    controller = Controller(name="apic1", address="10.0.0.1")
    root = ET.fromstring(forwarder.render(Fault(attributes={}), controller))

    assert root.findtext("events/event/host") == "10.0.0.1"
    assert root.findtext("events/event/nodeid") in ("", None)


@pytest.mark.asyncio
async def test_forward_writes_payload(controller):
    received = []
    done = asyncio.Event()

    async def handle(reader, writer):
        received.append(await reader.read())
        writer.close()
        done.set()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    forwarder = EventForwarder(host="127.0.0.1", port=port, now=lambda: FIXED_TIME)
    fault = Fault(attributes={"severity": "critical", "code": "F1"})

    async with server:
        assert await forwarder.forward(fault, controller) is True
        await asyncio.wait_for(done.wait(), timeout=5)

    assert received[0] == forwarder.render(fault, controller)


@pytest.mark.asyncio
async def test_forward_connection_failure_drops_event(controller):
    # Grab a free port and release it so nothing is listening
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]

    forwarder = EventForwarder(host="127.0.0.1", port=port, connect_timeout=2.0)

    assert await forwarder.forward(Fault(attributes={"severity": "minor"}), controller) is False

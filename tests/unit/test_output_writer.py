"""Unit tests for the capacity XML writer."""

import xml.etree.ElementTree as ET

import pytest

from acipoll.models.data_models import CapacityEntity, Controller, FabricNode, Interface
from acipoll.pipeline.output import CapacityOutputWriter, filter_interfaces


@pytest.fixture
def writer(tmp_path):
    return CapacityOutputWriter(
        tmp_path / "capacity" / "interfaces",
        tmp_path / "capacity" / "policer-cam",
    )


@pytest.fixture
def controller():
    interfaces = [
        Interface(id="eth1/1", usage="epg", admin_state="up", description="uplink",
                  ingress={"bytesRate": "10"}, egress={"bytesRate": "20"}),
        Interface(id="eth1/2", usage="infra", admin_state="up", egress={"bytesRate": "5"}),
        Interface(id="eth1/3", usage="epg", admin_state="up"),
        Interface(id="eth1/4", usage="epg", admin_state="down", ingress={"bytesRate": "1"}),
    ]
    return Controller(
        name="apic1",
        address="10.0.0.1",
        nodes=[FabricNode(id="101", dn="topology/pod-1/node-101", fabric_state="active", interfaces=interfaces)],
        capacity=[CapacityEntity(
            class_name="eqptcapacityPolUsage5min",
            attributes={"dn": "node-101", "polUsageCum": "100"},
            node_dn="node-101",
        )],
    )


def test_filter_interfaces_empty_deny_list_keeps_all():
    interfaces = [Interface(id="a", usage="epg"), Interface(id="b", usage="infra")]
    assert filter_interfaces(interfaces, []) == interfaces


def test_filter_interfaces_is_idempotent():
    interfaces = [
        Interface(id="a", usage="epg"),
        Interface(id="b", usage="infra"),
        Interface(id="c", usage="discovery,epg"),
    ]
    deny_list = ["^infra$", "discovery"]

    once = filter_interfaces(interfaces, deny_list)
    twice = filter_interfaces(once, deny_list)

    assert [i.id for i in once] == ["a"]
    assert once == twice


def test_interface_document(writer, controller):
    root, count = writer.format_interfaces(controller)

    # eth1/3 has no stats and eth1/4 is down
    assert count == 2
    assert root.tag == "interfaces"
    assert root.get("controller") == "apic1"

    first, second = root.findall("interface")
    assert first.get("node") == "101"
    assert first.findtext("id") == "eth1-1"
    assert first.findtext("descr") == "uplink"
    assert first.findtext("usage") == "epg"
    assert first.find("ingress").attrib == {"bytesRate": "10"}
    assert first.find("egress").attrib == {"bytesRate": "20"}

    assert second.findtext("id") == "eth1-2"
    assert second.findtext("descr") == "-"
    assert second.find("ingress").attrib == {}
    assert second.find("egress").attrib == {"bytesRate": "5"}


def test_deny_list_applies_to_document(tmp_path, controller):
    writer = CapacityOutputWriter(tmp_path / "i", tmp_path / "p", deny_list=["infra"])

    root, count = writer.format_interfaces(controller)

    assert count == 1
    assert [e.findtext("id") for e in root.findall("interface")] == ["eth1-1"]


def test_capacity_document(writer, controller):
    root, count = writer.format_capacity(controller)

    assert count == 1
    assert root.tag == "capacity"
    entity = root.find("eqptcapacityPolUsage5min")
    assert entity.get("dn") == "node-101"
    assert entity.get("polUsageCum") == "100"


def test_save_writes_both_files(tmp_path, writer, controller):
    count, paths = writer.save(controller)

    interfaces_file = tmp_path / "capacity" / "interfaces" / "apic1.xml"
    policer_file = tmp_path / "capacity" / "policer-cam" / "apic1-pol-capacity.xml"
    assert count == 2
    assert paths == [str(interfaces_file), str(policer_file)]
    assert interfaces_file.read_bytes().startswith(b"<?xml")
    assert ET.parse(interfaces_file).getroot().get("controller") == "apic1"
    assert ET.parse(policer_file).getroot().tag == "capacity"


def test_unwritable_file_is_skipped(tmp_path, controller):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    writer = CapacityOutputWriter(blocker / "interfaces", tmp_path / "policer-cam")
    other = Controller(name="apic2", address="10.0.0.2")

    written = writer.save_all([controller, other])

    # Interface files cannot be created, policer files still are
    assert written["apic1"][0] == 0
    assert written["apic1"][1] == [str(tmp_path / "policer-cam" / "apic1-pol-capacity.xml")]
    assert written["apic2"][1] == [str(tmp_path / "policer-cam" / "apic2-pol-capacity.xml")]

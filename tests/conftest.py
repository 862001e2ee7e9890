"""Pytest configuration and shared fixtures."""

import pytest

from acipoll.models.config import ControllerConfig, PollerConfig
from acipoll.models.data_models import Controller, FabricNode, Interface


@pytest.fixture
def sample_config(tmp_path):
    """Provide a sample configuration for testing."""
    return PollerConfig(
        controllers=[ControllerConfig(name="apic1", address="apic1.test", hostname="apic1.example.net")],
        scheme="http",
        apic_username="admin",
        apic_password="secret",
        max_concurrent_requests=4,
        connect_timeout=2.0,
        request_timeout=5.0,
        output_directory=str(tmp_path / "out"),
        monitoring_scheme="http",
        monitoring_host="apic1.test",
        forward_events=False,
        log_level="WARNING",
    )


@pytest.fixture
def sample_controller():
    """One controller with an active leaf (one up, one down port) and an inactive leaf."""
    controller = Controller(name="apic1", address="10.0.0.1", hostname="apic1.example.net", node_id="42")
    controller.nodes = [
        FabricNode(
            id="101",
            dn="topology/pod-1/node-101",
            role="leaf",
            fabric_state="active",
            interfaces=[
                Interface(id="eth1/1", usage="epg", admin_state="up", description="uplink"),
                Interface(id="eth1/2", usage="epg", admin_state="down"),
            ],
        ),
        FabricNode(
            id="102",
            dn="topology/pod-1/node-102",
            role="leaf",
            fabric_state="inactive",
            interfaces=[Interface(id="eth1/1", usage="epg", admin_state="up")],
        ),
    ]
    return controller

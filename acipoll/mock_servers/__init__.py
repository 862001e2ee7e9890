"""Mock controller and monitoring system for testing."""

from .app import create_app, create_mock_apic, create_mock_monitoring, default_fabric

__all__ = ["create_app", "create_mock_apic", "create_mock_monitoring", "default_fabric"]

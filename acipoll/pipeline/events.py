"""Fault event rendering and best-effort TCP forwarding."""

import asyncio
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Callable, Optional

from acipoll.models.data_models import Controller, Fault
from acipoll.monitoring.logger import StructuredLogger

EVENT_TIME_FORMAT = "%A, %d %B %Y %H:%M:%S o'clock UTC"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_event_time(moment: datetime) -> str:
    """Render a timestamp in the event receiver's fixed format (always UTC)."""
    return moment.astimezone(timezone.utc).strftime(EVENT_TIME_FORMAT)


class EventForwarder:
    """
    Turns faults into monitoring-system events and sends them over TCP.

    Each event uses a fresh connection that is closed right after the write;
    nothing is read back. A failed connection drops the event.
    """

    def __init__(
        self,
        host: str,
        port: int,
        uei: str = "uei.opennms.org/vendor/cisco/aci/fault",
        source: str = "acipoll",
        connect_timeout: Optional[float] = 10.0,
        now: Callable[[], datetime] = utc_now,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize forwarder.

        Args:
            host: Event receiver host
            port: Event receiver TCP port
            uei: Event identifier stamped on every event
            source: Source name stamped on every event
            connect_timeout: Seconds to wait for the connection, None waits forever
            now: Clock returning an aware UTC datetime
            logger: Optional structured logger
        """
        self.host = host
        self.port = port
        self.uei = uei
        self.source = source
        self.connect_timeout = connect_timeout
        self._now = now
        self.logger = logger

    def render(self, fault: Fault, controller: Controller) -> bytes:
        """Render one fault as an event document."""
        log = ET.Element("log")
        events = ET.SubElement(log, "events")
        event = ET.SubElement(events, "event")
        ET.SubElement(event, "uei").text = self.uei
        ET.SubElement(event, "source").text = self.source
        ET.SubElement(event, "nodeid").text = controller.node_id or ""
        ET.SubElement(event, "time").text = format_event_time(self._now())
        ET.SubElement(event, "host").text = controller.display_host

        parms = ET.SubElement(event, "parms")
        for name, value in sorted(fault.attributes.items()):
            parm = ET.SubElement(parms, "parm")
            ET.SubElement(parm, "parmName").text = name
            ET.SubElement(parm, "value", type="string", encoding="text").text = value

        ET.SubElement(event, "severity").text = fault.normalized_severity
        return ET.tostring(log, encoding="utf-8", xml_declaration=True)

    async def forward(self, fault: Fault, controller: Controller) -> bool:
        """
        Send one event on a new connection.

        Returns:
            True if the payload was written, False if the event was dropped
        """
        payload = self.render(fault, controller)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            if self.logger:
                self.logger.event_dropped(controller=controller.name, error=str(e) or e.__class__.__name__)
            return False

        try:
            writer.write(payload)
            await writer.drain()
        except OSError as e:
            if self.logger:
                self.logger.event_dropped(controller=controller.name, error=str(e))
            return False
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        if self.logger:
            self.logger.event_forwarded(controller=controller.name, severity=fault.normalized_severity)
        return True

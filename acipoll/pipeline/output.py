"""XML output for interface statistics and policer capacity.

One interface document and one policer-capacity document are written per
controller under the configured base directory:

    <base>/capacity/interfaces/<controller>.xml
    <base>/capacity/policer-cam/<controller>-pol-capacity.xml

Interface document layout:

    <interfaces controller="apic1">
      <interface node="101">
        <id>eth1-1</id>
        <descr>uplink</descr>
        <usage>epg</usage>
        <ingress bytesRate="..." .../>
        <egress bytesRate="..." .../>
      </interface>
    </interfaces>
"""

import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

from acipoll.models.data_models import Controller, Interface
from acipoll.models.errors import FileIOError
from acipoll.monitoring.logger import StructuredLogger

DESCRIPTION_PLACEHOLDER = "-"

PatternLike = Union[str, Pattern[str]]


def compile_deny_list(patterns: Iterable[PatternLike]) -> List[Pattern[str]]:
    return [re.compile(p) if isinstance(p, str) else p for p in patterns]


def is_denied(usage: str, deny_list: Sequence[Pattern[str]]) -> bool:
    return any(pattern.search(usage or "") for pattern in deny_list)


def filter_interfaces(
    interfaces: Iterable[Interface],
    deny_list: Sequence[PatternLike]
) -> List[Interface]:
    """
    Drop interfaces whose usage matches any deny-list pattern.

    Pure and idempotent; an empty deny-list keeps everything.
    """
    compiled = compile_deny_list(deny_list)
    return [interface for interface in interfaces if not is_denied(interface.usage, compiled)]


class CapacityOutputWriter:
    """
    Serializes the frozen data model to per-controller XML files.

    A file that cannot be written is logged and skipped; the other
    controllers' files are still produced.
    """

    def __init__(
        self,
        interfaces_directory: Path,
        policer_directory: Path,
        deny_list: Sequence[PatternLike] = (),
        logger: Optional[StructuredLogger] = None
    ):
        self.interfaces_directory = Path(interfaces_directory)
        self.policer_directory = Path(policer_directory)
        self.deny_list = compile_deny_list(deny_list)
        self.logger = logger

    def interfaces_path(self, controller: Controller) -> Path:
        return self.interfaces_directory / f"{controller.name}.xml"

    def policer_path(self, controller: Controller) -> Path:
        return self.policer_directory / f"{controller.name}-pol-capacity.xml"

    def format_interfaces(self, controller: Controller) -> Tuple[ET.Element, int]:
        """
        Build the interface document for one controller.

        Returns:
            Root element and number of interface entries
        """
        root = ET.Element("interfaces", controller=controller.name)
        count = 0
        for node in controller.nodes:
            for interface in filter_interfaces(node.interfaces, self.deny_list):
                if not interface.is_up or not interface.has_stats:
                    continue
                entry = ET.SubElement(root, "interface", node=node.id)
                ET.SubElement(entry, "id").text = interface.safe_id
                ET.SubElement(entry, "descr").text = interface.description or DESCRIPTION_PLACEHOLDER
                ET.SubElement(entry, "usage").text = interface.usage
                ET.SubElement(entry, "ingress", dict(sorted(interface.ingress.items())))
                ET.SubElement(entry, "egress", dict(sorted(interface.egress.items())))
                count += 1
        return root, count

    def format_capacity(self, controller: Controller) -> Tuple[ET.Element, int]:
        """Build the policer-capacity document; DNs are already node-only."""
        root = ET.Element("capacity", controller=controller.name)
        for entity in controller.capacity:
            attributes = dict(entity.attributes)
            attributes["dn"] = entity.node_dn
            ET.SubElement(root, entity.class_name, dict(sorted(attributes.items())))
        return root, len(controller.capacity)

    def save(self, controller: Controller) -> Tuple[int, List[str]]:
        """
        Write both documents for one controller.

        Returns:
            (interface entries written, paths written)
        """
        written: List[str] = []
        interface_count = 0

        root, count = self.format_interfaces(controller)
        path = self.interfaces_path(controller)
        if self._write(controller, root, path, count):
            interface_count = count
            written.append(str(path))

        root, count = self.format_capacity(controller)
        path = self.policer_path(controller)
        if self._write(controller, root, path, count):
            written.append(str(path))

        return interface_count, written

    def save_all(self, controllers: Iterable[Controller]) -> Dict[str, Tuple[int, List[str]]]:
        return {controller.name: self.save(controller) for controller in controllers}

    def _write(self, controller: Controller, root: ET.Element, path: Path, entries: int) -> bool:
        try:
            self._write_document(root, path)
        except FileIOError as e:
            if self.logger:
                self.logger.output_skipped(controller=controller.name, path=str(path), error=str(e.cause))
            return False
        if self.logger:
            self.logger.output_written(controller=controller.name, path=str(path), entries=entries)
        return True

    @staticmethod
    def _write_document(root: ET.Element, path: Path) -> None:
        tree = ET.ElementTree(root)
        ET.indent(tree)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'wb') as f:
                tree.write(f, encoding='utf-8', xml_declaration=True)
        except OSError as e:
            raise FileIOError(str(path), e)

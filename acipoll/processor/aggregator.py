"""Aggregator merging asynchronous partial results into the data model."""

import time
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from acipoll.models.data_models import (
    AggregationKey,
    CapacityEntity,
    Controller,
    ControllerSession,
    ControllerSummary,
    Direction,
    FabricNode,
    Fault,
    Interface,
    QueueStats,
    StatJob,
)
from acipoll.models.errors import ProtocolViolation
from acipoll.monitoring.logger import StructuredLogger


class Aggregator:
    """
    Single writer for everything discovered during a poll run.

    Stage callbacks hand their results over by value; the aggregator is the
    only component that mutates Controller, FabricNode and Interface
    instances. All calls happen on the event loop thread, so no locking is
    needed.

    Statistics results are routed through an AggregationKey index built by
    ``schedule_stat_jobs()``. Once ``freeze()`` is called the model is
    read-only and handed to the output writer.
    """

    def __init__(self, controllers: Iterable[Controller], logger: Optional[StructuredLogger] = None):
        self._controllers: Dict[str, Controller] = {c.name: c for c in controllers}
        self._index: Dict[AggregationKey, Interface] = {}
        self._frozen = False
        self._start_time: float = 0.0
        self._end_time: float = 0.0
        self.logger = logger

    @property
    def controllers(self) -> List[Controller]:
        return list(self._controllers.values())

    @property
    def frozen(self) -> bool:
        return self._frozen

    def controller(self, name: str) -> Controller:
        return self._controllers[name]

    def start_timer(self) -> None:
        self._start_time = time.time()

    def stop_timer(self) -> None:
        self._end_time = time.time()

    @property
    def duration(self) -> float:
        return self._end_time - self._start_time if self._end_time > 0 else 0.0

    # Stage 1

    def set_hostname(self, controller_name: str, hostname: str) -> None:
        self._check_writable()
        self._controllers[controller_name].hostname = hostname

    def set_node_id(self, controller_name: str, node_id: Optional[str]) -> None:
        self._check_writable()
        self._controllers[controller_name].node_id = node_id

    def set_session(self, controller_name: str, session: ControllerSession) -> None:
        self._check_writable()
        self._controllers[controller_name].session = session

    # Stage 2

    def add_faults(self, controller_name: str, faults: Iterable[Fault]) -> None:
        self._check_writable()
        self._controllers[controller_name].faults.extend(faults)

    def add_capacity(self, controller_name: str, entities: Iterable[CapacityEntity]) -> None:
        self._check_writable()
        self._controllers[controller_name].capacity.extend(entities)

    def add_nodes(self, controller_name: str, nodes: Iterable[FabricNode]) -> None:
        self._check_writable()
        self._controllers[controller_name].nodes.extend(nodes)

    def add_interfaces(self, controller_name: str, node_id: str, interfaces: Iterable[Interface]) -> None:
        """Attach discovered interfaces to a node. Called once per node."""
        self._check_writable()
        node = self._find_node(controller_name, node_id)
        if node is None:
            raise KeyError(f"unknown node {node_id} on controller {controller_name}")
        node.interfaces.extend(interfaces)

    # Statistics pipeline

    def schedule_stat_jobs(self) -> List[StatJob]:
        """
        Build the statistics jobs for every controller.

        Exactly one ingress and one egress job is created per ``up``
        interface of every ``active`` node; other interfaces get none and
        keep empty mappings.

        Returns:
            Jobs in discovery order
        """
        jobs: List[StatJob] = []
        for controller in self._controllers.values():
            for node in controller.nodes:
                if not node.is_active:
                    continue
                for interface in node.interfaces:
                    if not interface.is_up:
                        continue
                    key = AggregationKey(controller.name, node.id, interface.id)
                    self._index[key] = interface
                    for direction in (Direction.INGRESS, Direction.EGRESS):
                        jobs.append(StatJob(
                            controller=controller.name,
                            node_id=node.id,
                            node_dn=node.dn,
                            interface_id=interface.id,
                            direction=direction,
                        ))
        return jobs

    def record(self, key: AggregationKey, direction: Direction, attributes: Mapping[str, str]) -> None:
        """
        Store one direction's statistics for an interface.

        Overwrites any earlier value for the same key and direction.
        """
        self._check_writable()
        interface = self._index.get(key)
        if interface is None:
            if self.logger:
                self.logger.log("unknown_aggregation_key", key=list(key), direction=direction.value)
            return
        if direction is Direction.INGRESS:
            interface.ingress = dict(attributes)
        else:
            interface.egress = dict(attributes)

    def freeze(self) -> None:
        self._frozen = True

    def summaries(
        self,
        queue_stats: Optional[Mapping[str, QueueStats]] = None,
        events_sent: Optional[Mapping[str, int]] = None,
        written: Optional[Mapping[str, Tuple[int, List[str]]]] = None,
    ) -> List[ControllerSummary]:
        """
        Generate per-controller summaries.

        Args:
            queue_stats: Drain statistics keyed by controller name
            events_sent: Forwarded event counts keyed by controller name
            written: (interfaces written, output paths) keyed by controller name
        """
        queue_stats = queue_stats or {}
        events_sent = events_sent or {}
        written = written or {}

        summaries = []
        for controller in self._controllers.values():
            stats = queue_stats.get(controller.name)
            interfaces_written, paths = written.get(controller.name, (0, []))
            summaries.append(ControllerSummary(
                name=controller.name,
                logged_in=controller.session is not None,
                node_id=controller.node_id,
                nodes=len(controller.nodes),
                interfaces=sum(len(node.interfaces) for node in controller.nodes),
                faults=len(controller.faults),
                events_sent=events_sent.get(controller.name, 0),
                jobs_scheduled=stats.scheduled if stats else 0,
                jobs_failed=stats.failed if stats else 0,
                interfaces_written=interfaces_written,
                output_files=list(paths),
            ))
        return summaries

    def _find_node(self, controller_name: str, node_id: str) -> Optional[FabricNode]:
        for node in self._controllers[controller_name].nodes:
            if node.id == node_id:
                return node
        return None

    def _check_writable(self) -> None:
        if self._frozen:
            raise ProtocolViolation("aggregator is frozen")

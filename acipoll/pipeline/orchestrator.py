"""Poll orchestrator coordinating the staged collection pipeline."""

import asyncio
from typing import Callable, Dict, Optional

from acipoll.fetcher.apic_client import ApicClient
from acipoll.fetcher.barrier import CompletionBarrier
from acipoll.fetcher.http_client import AsyncHTTPClient
from acipoll.fetcher.http_task import HTTPTask
from acipoll.fetcher.job_queue import BoundedJobQueue
from acipoll.fetcher.monitoring_client import MonitoringClient
from acipoll.fetcher.resolver import resolve_hostname
from acipoll.models.config import PollerConfig
from acipoll.models.data_models import (
    Controller,
    ControllerSession,
    FabricNode,
    Fault,
    PollResult,
    QueueStats,
    StatJob,
)
from acipoll.models.errors import NetworkError
from acipoll.monitoring.logger import StructuredLogger
from acipoll.pipeline.events import EventForwarder
from acipoll.pipeline.output import CapacityOutputWriter
from acipoll.processor import Aggregator

STAGE_IDENTIFY = "identify"
STAGE_COLLECT = "collect"
STAGE_EVENTS = "events"
STAGE_STATISTICS = "statistics"
STAGE_OUTPUT = "output"


class PollOrchestrator:
    """
    Runs one poll of every configured controller.

    Stages, each joined by its own CompletionBarrier:

    1. identify: hostname, monitoring node id and login per controller
    2. collect: capacity, faults and topology per controller
    3. events: one forwarded event per fault

    Statistics collection then drains every StatJob through the bounded
    queue, the aggregator is frozen, and the output files are written.
    A stage never starts before the previous barrier has resolved.
    """

    def __init__(
        self,
        config: PollerConfig,
        transport=None,
        logger: Optional[StructuredLogger] = None,
        on_stage: Optional[Callable[[str], None]] = None
    ):
        """
        Initialize orchestrator with poller configuration.

        Args:
            config: Poller configuration object
            transport: Optional httpx transport (mock or ASGI in tests)
            logger: Structured logger, created from config when omitted
            on_stage: Called with the stage name as each stage starts
        """
        self.config = config
        self.transport = transport
        self.logger = logger or StructuredLogger(level=config.log_level)
        self.on_stage = on_stage
        self.controllers = [
            Controller(name=c.name, address=c.address, hostname=c.hostname)
            for c in config.controllers
        ]
        self.aggregator = Aggregator(self.controllers, logger=self.logger)
        self.events_sent: Dict[str, int] = {c.name: 0 for c in self.controllers}
        self.queue_stats: Dict[str, QueueStats] = {}

    async def run(self) -> PollResult:
        """
        Run the complete poll: identify → collect → events → statistics → output.

        Enforces total_timeout when configured.

        Raises:
            asyncio.TimeoutError: If the poll exceeds total_timeout
        """
        if self.config.total_timeout is None:
            return await self._run_pipeline()
        try:
            return await asyncio.wait_for(self._run_pipeline(), timeout=self.config.total_timeout)
        except asyncio.TimeoutError:
            self.logger.log("poll_timeout", timeout=self.config.total_timeout)
            raise

    async def _run_pipeline(self) -> PollResult:
        self.logger.log("poll_start", controllers=len(self.controllers))
        self.aggregator.start_timer()

        async with AsyncHTTPClient(
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.request_timeout,
            verify=self.config.verify_ssl,
            transport=self.transport
        ) as http_client:
            http_task = HTTPTask(http_client, logger=self.logger)
            apic = ApicClient(
                http_task,
                username=self.config.apic_username,
                password=self.config.apic_password,
                scheme=self.config.scheme,
                capacity_class=self.config.capacity_class,
                fault_filter=self.config.fault_filter,
                logger=self.logger
            )
            monitoring = MonitoringClient(
                http_task,
                host=self.config.monitoring_host,
                username=self.config.monitoring_username,
                password=self.config.monitoring_password,
                scheme=self.config.monitoring_scheme,
                query_path=self.config.monitoring_node_query_path,
                query_param=self.config.monitoring_node_query_param,
                logger=self.logger
            )

            await self.identify(apic, monitoring)
            await self.collect(apic)
            if self.config.forward_events:
                await self.forward_events(self._build_forwarder())
            await self.collect_statistics(apic)

        self._notify(STAGE_OUTPUT)
        writer = CapacityOutputWriter(
            self.config.interfaces_directory,
            self.config.policer_directory,
            deny_list=self.config.usage_deny_list,
            logger=self.logger
        )
        written = writer.save_all(self.aggregator.controllers)
        self.aggregator.stop_timer()

        return PollResult(
            controllers=self.aggregator.summaries(self.queue_stats, self.events_sent, written),
            duration_seconds=self.aggregator.duration
        )

    # Stage 1

    async def identify(self, apic: ApicClient, monitoring: MonitoringClient) -> None:
        barrier = self._new_stage(STAGE_IDENTIFY)
        for controller in self.controllers:
            if controller.hostname is None:
                barrier.spawn(self._resolve_hostname(controller), label=f"{controller.name}/hostname")
            barrier.spawn(self._resolve_node_id(monitoring, controller), label=f"{controller.name}/node-id")
            barrier.spawn(self._login(apic, controller), label=f"{controller.name}/login")
        await self._join(barrier)

    async def _resolve_hostname(self, controller: Controller) -> None:
        hostname = await resolve_hostname(controller.address, logger=self.logger)
        self.aggregator.set_hostname(controller.name, hostname)

    async def _resolve_node_id(self, monitoring: MonitoringClient, controller: Controller) -> None:
        node_id = await monitoring.resolve_node_id(controller)
        self.aggregator.set_node_id(controller.name, node_id)

    async def _login(self, apic: ApicClient, controller: Controller) -> None:
        session = await apic.login(controller)
        if isinstance(session, ControllerSession):
            self.aggregator.set_session(controller.name, session)

    # Stage 2

    async def collect(self, apic: ApicClient) -> None:
        barrier = self._new_stage(STAGE_COLLECT)
        for controller in self.controllers:
            barrier.spawn(self._collect_capacity(apic, controller), label=f"{controller.name}/capacity")
            barrier.spawn(self._collect_faults(apic, controller), label=f"{controller.name}/faults")
            barrier.spawn(
                self._discover_topology(apic, controller, barrier),
                label=f"{controller.name}/topology"
            )
        await self._join(barrier)

    async def _collect_capacity(self, apic: ApicClient, controller: Controller) -> None:
        entities = await apic.fetch_capacity(controller)
        self.aggregator.add_capacity(controller.name, entities)

    async def _collect_faults(self, apic: ApicClient, controller: Controller) -> None:
        faults = await apic.fetch_faults(controller)
        self.aggregator.add_faults(controller.name, faults)

    async def _discover_topology(self, apic: ApicClient, controller: Controller, barrier: CompletionBarrier) -> None:
        nodes = await apic.fetch_fabric_nodes(controller)
        self.aggregator.add_nodes(controller.name, nodes)
        # Registered before this task's own handle completes, so the stage
        # cannot resolve between the two.
        for node in nodes:
            if node.is_active:
                barrier.spawn(
                    self._discover_interfaces(apic, controller, node),
                    label=f"{controller.name}/node-{node.id}/interfaces"
                )

    async def _discover_interfaces(self, apic: ApicClient, controller: Controller, node: FabricNode) -> None:
        interfaces = await apic.fetch_interfaces(controller, node)
        self.aggregator.add_interfaces(controller.name, node.id, interfaces)

    # Stage 3

    def _build_forwarder(self) -> EventForwarder:
        return EventForwarder(
            host=self.config.event_host,
            port=self.config.event_port,
            uei=self.config.event_uei,
            source=self.config.event_source,
            connect_timeout=self.config.connect_timeout,
            logger=self.logger
        )

    async def forward_events(self, forwarder: EventForwarder) -> None:
        barrier = self._new_stage(STAGE_EVENTS)
        for controller in self.controllers:
            for fault in controller.faults:
                barrier.spawn(self._forward(forwarder, controller, fault))
        await self._join(barrier)

    async def _forward(self, forwarder: EventForwarder, controller: Controller, fault: Fault) -> None:
        if await forwarder.forward(fault, controller):
            self.events_sent[controller.name] += 1

    # Statistics pipeline

    async def collect_statistics(self, apic: ApicClient) -> Dict[str, QueueStats]:
        """Drain two StatJobs per up interface, then freeze the aggregator."""
        self._notify(STAGE_STATISTICS)
        jobs = self.aggregator.schedule_stat_jobs()
        queue = BoundedJobQueue(concurrency=self.config.max_concurrent_requests, logger=self.logger)
        queue.extend(jobs)

        self.logger.stage_start(stage=STAGE_STATISTICS, pending=len(jobs))
        start = asyncio.get_running_loop().time()

        async def handle(job: StatJob) -> Optional[NetworkError]:
            result = await apic.fetch_interface_stats(self.aggregator.controller(job.controller), job)
            if isinstance(result, NetworkError):
                return result
            self.aggregator.record(job.key, job.direction, result)
            return None

        self.queue_stats = await queue.drain(handle)
        self.aggregator.freeze()

        elapsed = asyncio.get_running_loop().time() - start
        self.logger.stage_complete(stage=STAGE_STATISTICS, elapsed_ms=elapsed * 1000)
        return self.queue_stats

    def _new_stage(self, name: str) -> CompletionBarrier:
        self._notify(name)
        return CompletionBarrier(name, logger=self.logger)

    async def _join(self, barrier: CompletionBarrier) -> None:
        self.logger.stage_start(stage=barrier.name, pending=barrier.pending)
        start = asyncio.get_running_loop().time()
        await barrier.wait()
        elapsed = asyncio.get_running_loop().time() - start
        self.logger.stage_complete(stage=barrier.name, elapsed_ms=elapsed * 1000)

    def _notify(self, stage: str) -> None:
        if self.on_stage:
            self.on_stage(stage)

"""Controller (APIC) REST operations on top of HTTPTask."""

from typing import Dict, List, Optional, Union

from acipoll.fetcher.http_task import HTTPTask
from acipoll.models.data_models import (
    CapacityEntity,
    Controller,
    ControllerSession,
    Direction,
    FabricNode,
    Fault,
    FetchResult,
    Interface,
    StatJob,
)
from acipoll.models.errors import NetworkError
from acipoll.monitoring.logger import StructuredLogger
from acipoll.processor.normalizer import (
    parse_capacity,
    parse_fabric_nodes,
    parse_faults,
    parse_interfaces,
    parse_login_token,
    parse_stats,
)

STAT_CLASSES = {
    Direction.INGRESS: "CDeqptIngrTotal5min",
    Direction.EGRESS: "CDeqptEgrTotal5min",
}


class ApicClient:
    """
    Issues every controller request of a poll run.

    Login produces an explicit ControllerSession; each later call sends it
    as a header. A controller without a session is still queried, and its
    requests are expected to fail one by one.

    Data operations never raise for network or parse problems: the failure
    is logged and the operation returns an empty result.
    """

    def __init__(
        self,
        http_task: HTTPTask,
        username: str,
        password: str,
        scheme: str = "https",
        capacity_class: str = "eqptcapacityPolUsage5min",
        fault_filter: Optional[str] = None,
        logger: Optional[StructuredLogger] = None
    ):
        self.http_task = http_task
        self.username = username
        self.password = password
        self.scheme = scheme
        self.capacity_class = capacity_class
        self.fault_filter = fault_filter
        self.logger = logger

    def base_url(self, controller: Controller) -> str:
        return f"{self.scheme}://{controller.address}"

    async def login(self, controller: Controller) -> Union[ControllerSession, NetworkError]:
        """
        Authenticate against one controller.

        Returns:
            The new session, or the NetworkError that prevented it
        """
        payload = {"aaaUser": {"attributes": {"name": self.username, "pwd": self.password}}}
        result = await self.http_task.fetch(
            f"{self.base_url(controller)}/api/aaaLogin.xml",
            method="POST",
            json=payload
        )
        if result.success:
            try:
                token = parse_login_token(result.text)
            except ValueError as e:
                error = NetworkError(str(e), code=result.status_code)
            else:
                if token:
                    return ControllerSession(controller_name=controller.name, token=token)
                error = NetworkError("login response carried no token", code=result.status_code)
        else:
            error = result.error

        if self.logger:
            self.logger.login_failed(controller=controller.name, error=str(error))
        return error

    async def fetch_capacity(self, controller: Controller) -> List[CapacityEntity]:
        result = await self._get(controller, f"/api/class/{self.capacity_class}.xml")
        return self._parse(result, lambda text: parse_capacity(text, self.capacity_class))

    async def fetch_faults(self, controller: Controller) -> List[Fault]:
        params = {"query-target-filter": self.fault_filter} if self.fault_filter else None
        result = await self._get(controller, "/api/class/faultInst.xml", params=params)
        return self._parse(result, parse_faults)

    async def fetch_fabric_nodes(self, controller: Controller) -> List[FabricNode]:
        result = await self._get(controller, "/api/class/fabricNode.xml")
        return self._parse(result, parse_fabric_nodes)

    async def fetch_interfaces(self, controller: Controller, node: FabricNode) -> List[Interface]:
        result = await self._get(controller, f"/api/node/class/{node.dn}/l1PhysIf.xml")
        return self._parse(result, parse_interfaces)

    async def fetch_interface_stats(
        self,
        controller: Controller,
        job: StatJob
    ) -> Union[Dict[str, str], NetworkError]:
        """
        Fetch one direction's counters for one interface.

        Returns:
            Counter mapping, or the NetworkError for the failed request
        """
        stat_class = STAT_CLASSES[job.direction]
        path = f"/api/node/mo/{job.node_dn}/sys/phys-[{job.interface_id}]/{stat_class}.xml"
        result = await self._get(controller, path)
        if not result.success:
            return result.error
        try:
            return parse_stats(result.text)
        except ValueError as e:
            return NetworkError(str(e), code=result.status_code)

    async def _get(self, controller: Controller, path: str, params: Optional[Dict[str, str]] = None) -> FetchResult:
        headers = controller.session.headers() if controller.session else None
        return await self.http_task.fetch(
            f"{self.base_url(controller)}{path}",
            headers=headers,
            params=params
        )

    def _parse(self, result: FetchResult, parser) -> list:
        if not result.success:
            return []
        try:
            return parser(result.text)
        except ValueError as e:
            if self.logger:
                self.logger.fetch_error(url=result.url, status=result.status_code, error=str(e))
            return []

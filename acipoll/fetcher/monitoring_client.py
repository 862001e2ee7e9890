"""Node lookup against the downstream monitoring system."""

import logging
from typing import Optional

from acipoll.fetcher.http_task import HTTPTask
from acipoll.models.data_models import Controller
from acipoll.monitoring.logger import StructuredLogger
from acipoll.processor.normalizer import parse_monitoring_node_id


class MonitoringClient:
    """Resolves the monitoring system's node identifier for a controller."""

    def __init__(
        self,
        http_task: HTTPTask,
        host: str,
        username: str,
        password: str,
        scheme: str = "https",
        query_path: str = "/opennms/rest/nodes",
        query_param: str = "label",
        logger: Optional[StructuredLogger] = None
    ):
        self.http_task = http_task
        self.host = host
        self.username = username
        self.password = password
        self.scheme = scheme
        self.query_path = query_path
        self.query_param = query_param
        self.logger = logger

    @property
    def query_url(self) -> str:
        return f"{self.scheme}://{self.host}{self.query_path}"

    async def resolve_node_id(self, controller: Controller) -> Optional[str]:
        """
        Look the controller up by name.

        Returns:
            Node identifier, or None when the query fails or finds nothing
        """
        result = await self.http_task.fetch(
            self.query_url,
            params={self.query_param: controller.name},
            auth=(self.username, self.password)
        )
        if not result.success:
            return None

        try:
            node_id = parse_monitoring_node_id(result.text)
        except ValueError as e:
            if self.logger:
                self.logger.fetch_error(url=result.url, status=result.status_code, error=str(e))
            return None

        if node_id is None and self.logger:
            self.logger.log("node_not_found", logging.WARNING, controller=controller.name)
        return node_id

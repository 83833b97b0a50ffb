""" Post-deployment smoke probe: one synthetic request to the entry endpoint. """
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from ...errors import SmokeTestInconclusive
from ...workflow.models import DeploymentResult

logger = logging.getLogger(__name__)


class SmokeTester:
    """ probe() never raises; a failed probe is a warning, not a failed deployment. """

    def __init__(self, timeout: float = 10.0, method: str = "POST",
                 transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self.method = method.upper()
        self.transport = transport

    def probe(self, result: DeploymentResult) -> bool:
        if not result.entry_endpoint:
            return True

        payload = {"source": "clixen-smoke-test", "timestamp": datetime.now(timezone.utc).isoformat()}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                if self.method == "GET":
                    resp = client.get(result.entry_endpoint, params=payload)
                else:
                    resp = client.request(self.method, result.entry_endpoint, json=payload)
            if not resp.is_success:
                raise SmokeTestInconclusive(f"{result.entry_endpoint} answered HTTP {resp.status_code}")
        except (httpx.HTTPError, httpx.InvalidURL, SmokeTestInconclusive) as e:
            logger.warning("[SMOKE] workflow %s: %s", result.engine_workflow_id, e)
            return False

        logger.info("[SMOKE] %s answered HTTP %d", result.entry_endpoint, resp.status_code)
        return True

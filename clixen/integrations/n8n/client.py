""" Thin client for the n8n public REST API (/api/v1). """
import logging
from typing import Any, Dict, List, Optional

import httpx

from ...errors import ActivationFailure, CreationFailure, EngineUnavailable

logger = logging.getLogger(__name__)


def public_base(api_url: str) -> str:
    """ https://host/api/v1 -> https://host """
    base = api_url.rstrip("/")
    if base.endswith("/api/v1"):
        base = base[: -len("/api/v1")]
    return base


def _error_message(resp: httpx.Response) -> str:
    # n8n reports errors as {"message": "..."}
    try:
        return resp.json().get("message") or resp.text[:200]
    except ValueError:
        return resp.text[:200]


class N8nClient:
    """
    Every request runs under the client timeout. Transport errors and non-2xx
    responses are translated into the pipeline's error taxonomy here, so callers
    never see httpx exceptions.
    """

    def __init__(self, api_url: str, api_key: str, public_url: Optional[str] = None,
                 timeout: float = 15.0, transport: Optional[httpx.BaseTransport] = None):
        self.api_url = api_url.rstrip("/")
        self.public_url = (public_url or public_base(api_url)).rstrip("/")
        self._client = httpx.Client(
            headers={"X-N8N-API-KEY": api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        """POST /workflows -> the created workflow (with its engine id)."""
        try:
            resp = self._client.post(f"{self.api_url}/workflows", json=workflow)
        except httpx.HTTPError as e:
            raise CreationFailure(f"Could not reach n8n to create workflow: {e}") from e
        if resp.status_code >= 300:
            raise CreationFailure(f"n8n rejected workflow (HTTP {resp.status_code}): {_error_message(resp)}",
                                  status_code=resp.status_code)
        try:
            created = resp.json()
        except ValueError as e:
            raise CreationFailure("n8n returned a non-JSON body on create", status_code=resp.status_code) from e
        if not created.get("id"):
            raise CreationFailure("n8n response has no workflow id", status_code=resp.status_code)
        return created

    def activate_workflow(self, workflow_id: str) -> None:
        try:
            resp = self._client.post(f"{self.api_url}/workflows/{workflow_id}/activate")
        except httpx.HTTPError as e:
            raise ActivationFailure(f"Could not reach n8n to activate workflow: {e}", workflow_id) from e
        if resp.status_code >= 300:
            raise ActivationFailure(
                f"n8n refused to activate workflow {workflow_id} (HTTP {resp.status_code}): {_error_message(resp)}",
                workflow_id, status_code=resp.status_code,
            )

    def list_node_types(self) -> List[str]:
        # node types are served by the editor backend, not the public API
        data = self._get(f"{self.public_url}/types/nodes.json")
        items = data if isinstance(data, list) else data.get("data", [])
        return sorted({item["name"] for item in items if isinstance(item, dict) and item.get("name")})

    def list_credential_types(self) -> List[str]:
        data = self._get(f"{self.api_url}/credentials")
        items = data.get("data", []) if isinstance(data, dict) else data
        return sorted({item["type"] for item in items if isinstance(item, dict) and item.get("type")})

    def health_check(self) -> bool:
        try:
            self._get(f"{self.public_url}/healthz")
        except EngineUnavailable as e:
            logger.warning("n8n health check failed: %s", e)
            return False
        return True

    def _get(self, url: str) -> Any:
        try:
            resp = self._client.get(url)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise EngineUnavailable(f"GET {url} failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EngineUnavailable(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise EngineUnavailable(f"GET {url} returned a non-JSON body") from e

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "N8nClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

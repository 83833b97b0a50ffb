""" Capability discovery: which node kinds and credential types the engine offers. """
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import EngineUnavailable

logger = logging.getLogger(__name__)


class CapabilityDiscovery:
    """
    Read-only lookups against the engine, cached for `ttl_s` seconds.

    Node kinds: the configured allow-list narrowed to what the engine reports,
    or the configured list as-is when there is no engine or it cannot be reached.
    Credential types: None when the engine lookup fails, so the validator can
    downgrade the credential rule to advisory instead of guessing.
    """

    def __init__(self, client=None, default_node_kinds: Sequence[str] = (),
                 default_credential_types: Sequence[str] = (), ttl_s: float = 300.0,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.default_node_kinds = list(default_node_kinds)
        self.default_credential_types = list(default_credential_types)
        self.ttl_s = ttl_s
        self.clock = clock
        self._cache: Dict[str, Tuple[float, Optional[List[str]]]] = {}

    def list_available_node_kinds(self) -> List[str]:
        return self._cached("node_kinds", self._fetch_node_kinds)

    def list_available_credential_types(self) -> Optional[List[str]]:
        return self._cached("credential_types", self._fetch_credential_types)

    def invalidate(self) -> None:
        self._cache.clear()

    def _cached(self, key: str, fetch):
        now = self.clock()
        hit = self._cache.get(key)
        if hit and now - hit[0] < self.ttl_s:
            return hit[1]
        value = fetch()
        self._cache[key] = (now, value)
        return value

    def _fetch_node_kinds(self) -> List[str]:
        if self.client is None:
            return list(self.default_node_kinds)
        try:
            engine_kinds = set(self.client.list_node_types())
        except EngineUnavailable as e:
            logger.warning("Node type discovery failed, using configured allow-list: %s", e)
            return list(self.default_node_kinds)
        available = [k for k in self.default_node_kinds if k in engine_kinds]
        missing = len(self.default_node_kinds) - len(available)
        if missing:
            logger.info("%d configured node kind(s) are not installed on the engine", missing)
        return available

    def _fetch_credential_types(self) -> Optional[List[str]]:
        if self.client is None:
            return list(self.default_credential_types)
        try:
            return list(self.client.list_credential_types())
        except EngineUnavailable as e:
            logger.warning("Credential discovery failed, credential checks become advisory: %s", e)
            return None

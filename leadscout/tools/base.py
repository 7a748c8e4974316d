"""
Capability adapter contract.

Every provider operation returns a ToolResult instead of raising: missing
credentials, non-2xx responses, network failures and open circuits all map
to the error variant so the calling agent can degrade gracefully. There is
no retry here; retries belong to the orchestrator.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from leadscout.services.circuit_breaker import CircuitOpenError

logger = logging.getLogger('tools')

DEFAULT_TIMEOUT = 30


@dataclass
class ToolResult:
    """Result-or-error from one provider operation."""
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.data)
        if self.error:
            out['error'] = self.error
        return out


class ProviderError(Exception):
    """Internal signal for a failed provider request; never leaves the adapter."""


class ProviderClient:
    """
    Base class for one external provider.

    Subclasses set `name` (also the circuit breaker name) and `label` (used in
    error strings), and describe the empty payload returned alongside errors.
    """
    name: str = ''
    label: str = ''
    requires_key: bool = True

    def __init__(self, api_key: Optional[str] = None, breaker=None, session=None, timeout: int = DEFAULT_TIMEOUT):
        self.api_key = api_key or ''
        self.breaker = breaker
        self.http = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or not self.requires_key

    def not_configured(self, empty: Dict[str, Any], env_var: str = '') -> ToolResult:
        hint = f" Set {env_var} in environment variables." if env_var else ''
        return ToolResult(data=empty, error=f"{self.label} API key not configured.{hint}")

    def _http_call(self, method: str, url: str, **kwargs) -> requests.Response:
        """Server-side failures (5xx, 429) raise here so the breaker counts them; other 4xx pass through."""
        response = self.http.request(method, url, **kwargs)
        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderError(self._api_error(response))
        return response

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        if self.breaker is not None:
            return self.breaker.call(self._http_call, method, url, **kwargs)
        return self._http_call(method, url, **kwargs)

    def _api_error(self, response) -> str:
        return f"{self.label} API error: {response.status_code} {response.reason or ''}".strip()

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Perform one HTTP call. Raises ProviderError with a caller-facing message
        for any failure; callers turn it into ToolResult.error.
        """
        try:
            response = self._send(method, url, **kwargs)
        except CircuitOpenError as e:
            raise ProviderError(str(e)) from e
        except ProviderError as e:
            logger.warning("%s", e)
            raise
        except requests.RequestException as e:
            logger.warning("%s request failed: %s", self.label, e)
            raise ProviderError(f"{self.label} request failed: {e}") from e
        except Exception as e:
            logger.error("%s request raised unexpectedly", self.label, exc_info=True)
            raise ProviderError(f"{self.label} request failed: {e}") from e
        if not response.ok:
            raise ProviderError(self._api_error(response))
        return response

"""
probe.py -- Connectivity check against a provider's vendor API.

Lists the vendor's models endpoint with the stored key and reports the round
trip time. A 2xx answer means the key is accepted and the base URL is right;
that is all "test provider" promises.
"""

import logging
import time
from dataclasses import dataclass

import requests

from providers.catalog import default_base_url, get_vendor
from providers.models import AIProvider

logger = logging.getLogger("aiplatform.providers.probe")

# Module-level session shared across probes for connection pooling.
# Vendor APIs are known hosts; 3 redirects is generous.
_session = requests.Session()
_session.max_redirects = 3

_TIMEOUT_SECONDS = 10


class ProviderProbeError(Exception):
    """The vendor could not be reached or rejected the request."""


@dataclass(frozen=True)
class ProbeResult:
    response_time_ms: int
    status_code: int


def _build_request(provider: AIProvider) -> tuple[str, dict[str, str], dict[str, str]]:
    if not provider.key_readable:
        raise ProviderProbeError(f"The stored API key for {provider.display_name} is unreadable; enter it again")
    base_url = (provider.base_url or default_base_url(provider.name) or "").rstrip("/")
    if not base_url:
        raise ProviderProbeError(f"No base URL configured for provider type '{provider.name}'")
    vendor = get_vendor(provider.name)
    headers: dict[str, str] = {"Accept": "application/json"}
    params: dict[str, str] = {}
    style = vendor.auth_style if vendor else "bearer"
    if style == "x-api-key":
        headers["x-api-key"] = provider.api_key
    elif style == "query":
        params["key"] = provider.api_key
    else:
        headers["Authorization"] = f"Bearer {provider.api_key}"
    if vendor:
        headers.update(dict(vendor.extra_headers))
    return f"{base_url}/models", headers, params


def probe_provider(provider: AIProvider) -> ProbeResult:
    """Call the vendor's models endpoint. Raises ProviderProbeError on any failure."""
    url, headers, params = _build_request(provider)
    start = time.perf_counter()
    try:
        resp = _session.get(url, headers=headers, params=params, timeout=_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logger.warning("Provider probe failed for %s (%s): %s", provider.id, provider.name, exc)
        raise ProviderProbeError(f"Could not reach {provider.display_name}") from exc
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    if resp.status_code in (401, 403):
        raise ProviderProbeError(f"{provider.display_name} rejected the API key")
    if not resp.ok:
        raise ProviderProbeError(f"{provider.display_name} answered HTTP {resp.status_code}")
    return ProbeResult(response_time_ms=elapsed_ms, status_code=resp.status_code)

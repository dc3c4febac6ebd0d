"""
Hydrus Client API client.
"""

import json
import time
from typing import Any, Dict, List, Optional
import httpx
from .models import TagCommit
from .config import settings
from .exceptions import NetworkError
from .logging import get_logger


ACCESS_KEY_HEADER = "Hydrus-Client-API-Access-Key"

# Legacy /get_services groups that hold tag services
TAG_SERVICE_GROUPS = ("local_tags", "tag_repositories", "all_known_tags")


class HydrusAPIError(NetworkError):
    """Custom exception for Hydrus API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HydrusClient:
    """Synchronous client for the Hydrus Client API.

    A single ``httpx.Client`` is shared by every caller, so one instance can
    be used from many worker threads.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        access_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (host or settings.hydrus_host).rstrip("/")
        self.logger = get_logger("hydrus_client")
        self.timeout = settings.request_timeout
        self.max_retries = settings.max_retries
        self.retry_delay = settings.retry_delay

        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={ACCESS_KEY_HEADER: access_key if access_key is not None else settings.hydrus_access_key},
        )

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """Make an HTTP request with retry logic."""
        for attempt in range(self.max_retries + 1):
            try:
                response = self.client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    json=json_data
                )
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500 and attempt < self.max_retries:
                    self.logger.warning(
                        f"⚠️  Server error {e.response.status_code} on {endpoint}, retrying "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(self.retry_delay * (2 ** attempt))  # Exponential backoff
                    continue
                raise HydrusAPIError(
                    f"HTTP {method} {endpoint} failed: {e.response.status_code} - {e.response.text}",
                    status_code=e.response.status_code,
                ) from e

            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    self.logger.warning(
                        f"Request error on {endpoint}, retrying (attempt {attempt + 1}/{self.max_retries}): {e}"
                    )
                    time.sleep(self.retry_delay * (2 ** attempt))
                    continue
                raise HydrusAPIError(f"Request {method} {endpoint} failed: {e}") from e

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON response body, raising HydrusAPIError if it is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            raise HydrusAPIError(f"Invalid JSON from {response.request.url}: {e}") from e

    def api_version(self) -> Dict[str, Any]:
        """Get the Client API version, a cheap reachability check."""
        return self._json(self._make_request("GET", "/api_version"))

    def get_file(self, file_hash: str) -> bytes:
        """Download the original file bytes."""
        self.logger.debug(f"Downloading file {file_hash}")
        response = self._make_request("GET", "/get_files/file", params={"hash": file_hash})
        return response.content

    def get_render(self, file_hash: str) -> bytes:
        """Download Hydrus' own render of the file (PNG for still images)."""
        self.logger.debug(f"Downloading render of {file_hash}")
        response = self._make_request(
            "GET",
            "/get_files/render",
            params={"hash": file_hash, "download": "true"},
        )
        return response.content

    def search_file_hashes(self, tags: List[str], tag_service_key: Optional[str] = None) -> List[str]:
        """Search for files matching every entry of ``tags`` and return their hashes."""
        params = {
            "tags": json.dumps(tags),
            "return_hashes": "true",
            "return_file_ids": "false",
        }
        if tag_service_key:
            params["tag_service_key"] = tag_service_key

        data = self._json(self._make_request("GET", "/get_files/search_files", params=params))
        if not isinstance(data, dict):
            raise HydrusAPIError(f"Unexpected search response type: {type(data).__name__}")
        return list(data.get("hashes", []))

    def get_services(self) -> Dict[str, str]:
        """Get every known service as a ``{service_key: name}`` mapping."""
        data = self._json(self._make_request("GET", "/get_services"))
        if not isinstance(data, dict):
            raise HydrusAPIError(f"Unexpected services response type: {type(data).__name__}")

        services: Dict[str, str] = {}
        if isinstance(data.get("services"), dict):
            for key, info in data["services"].items():
                if isinstance(info, dict) and "name" in info:
                    services[key] = info["name"]
        else:
            # Clients older than v531 only return per-type lists
            for group in TAG_SERVICE_GROUPS:
                for info in data.get(group, []):
                    services[info["service_key"]] = info["name"]

        self.logger.debug(f"Found {len(services)} services")
        return services

    def add_tags(self, commit: TagCommit) -> None:
        """Add tags to files."""
        self._make_request("POST", "/add_tags/add_tags", json_data=commit.model_dump())

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

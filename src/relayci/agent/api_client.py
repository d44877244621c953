# agent/api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Optional
from urllib.parse import urljoin

from relayci.errors import CIError
from relayci.model import Event, RunResult

from .models import ClaimedEvent


class APIError(CIError):
    """Raised when API requests fail."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class APIClient:
    """HTTP client for the relayci control plane."""

    def __init__(self, base_url: str, agent_id: str = "cli", timeout: float = 30.0):
        """
        Initialize API client.

        Args:
            base_url: Base URL of the API (e.g., "https://ci.example.com")
            agent_id: Identifier sent along with claims and results
            timeout: Socket timeout for each request, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.timeout = timeout

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        """
        Make an HTTP request to the API and return the decoded JSON body.

        Raises:
            APIError: If the request fails
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(
            url,
            data=req_data,
            headers={"Content-Type": "application/json"},
            method=method,
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                if response.status == 204:
                    return {}
                response_data = response.read().decode("utf-8")
                if response_data:
                    return json.loads(response_data)
                return {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            raise APIError(f"API request failed: {e.code} {e.reason}. {error_body}".strip(), status=e.code)
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def submit_event(self, event: Event, repo_url: str | None = None) -> str:
        """Queue an event for agents; returns the event id."""
        payload = event.to_dict()
        if repo_url:
            payload["repo_url"] = repo_url
        response = self._request("POST", "/events", data=payload)
        return str(response.get("event_id", ""))

    def claim_event(self) -> Optional[ClaimedEvent]:
        """
        Claim the next queued event.

        Returns:
            ClaimedEvent if one is available, None otherwise
        """
        response = self._request("POST", "/events/claim", data={"agent_id": self.agent_id})
        if not response:
            return None
        try:
            return ClaimedEvent.from_dict(response)
        except (KeyError, TypeError) as e:
            raise APIError(f"Malformed claim response: {e}")

    def report_run(self, result: RunResult, event_id: str | None = None) -> str:
        """Deliver a RunResult; returns the stored run id."""
        payload = result.to_dict()
        payload["agent_id"] = self.agent_id
        payload["event_id"] = event_id
        response = self._request("POST", "/runs", data=payload)
        return str(response.get("run_id", ""))

"""Thin authenticated client for the Jira REST API."""

import logging
from typing import Optional

import requests

from services.errors import UpstreamTransportError

logger = logging.getLogger(__name__)

# Upstream bodies are echoed back to callers, keep them short
MAX_DETAILS_LENGTH = 500


class JiraClient:
    """Issues single authenticated GET requests against one Jira site.

    Safe to share between worker threads: every call is an independent
    ``requests.get``.
    """

    def __init__(self, server: str, email: str, token: str, timeout: float = 30):
        self.server = server.rstrip("/")
        self.email = email
        self.token = token
        self.timeout = timeout

    def get(self, endpoint: str, params: Optional[dict] = None):
        """Fetch one resource and return its decoded JSON body.

        Raises:
            UpstreamTransportError: on timeouts, connection failures and
                non-2xx responses. The upstream status code is kept when
                Jira answered at all.
        """
        url = f"{self.server}{endpoint}"
        logger.debug(f"GET {url} params={params}")

        try:
            response = requests.get(
                url,
                auth=(self.email, self.token),
                headers={"Accept": "application/json"},
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise UpstreamTransportError(
                "Connection to Jira timed out", status_code=504, endpoint=endpoint
            ) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise UpstreamTransportError(
                f"Jira API error: {status}", status_code=status,
                details=_response_details(e.response), endpoint=endpoint
            ) from e
        except requests.exceptions.RequestException as e:
            raise UpstreamTransportError(
                f"Failed to connect to Jira: {e}", endpoint=endpoint
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamTransportError(
                "Invalid JSON in Jira response", status_code=502,
                details=_response_details(response), endpoint=endpoint
            ) from e


def _response_details(response):
    """Return the upstream body (decoded JSON when possible) for error payloads."""
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        text = response.text or ""
        return text[:MAX_DETAILS_LENGTH] or None

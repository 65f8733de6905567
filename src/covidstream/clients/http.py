"""Async HTTP client for downloading the source document.

A thin wrapper over httpx that:
- Opens a short-lived connection per download (one document per run)
- Maps transport errors, timeouts and non-2xx responses to Unreachable
- Disables TLS certificate verification only for explicitly allow-listed hosts

Usage:
    client = DocumentClient(timeout=30.0, insecure_hosts=["raw.githubusercontent.com"])
    text = await client.get_text("https://raw.githubusercontent.com/.../data.csv")
"""

import logging
from urllib.parse import urlsplit

import httpx

from covidstream.errors import Unreachable

logger = logging.getLogger(__name__)


class DocumentClient:
    """Downloads text documents over HTTP(S).

    Args:
        timeout: Request timeout in seconds (default: 30)
        insecure_hosts: Host names fetched without certificate verification.
            Matching is exact and case-insensitive; subdomains are not included.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        insecure_hosts: list[str] | None = None,
    ) -> None:
        self.timeout = timeout
        self.insecure_hosts = {host.lower() for host in insecure_hosts or []}

    def verify_tls(self, url: str) -> bool:
        """Whether certificates presented by the host of `url` are verified."""
        host = (urlsplit(url).hostname or "").lower()
        return host not in self.insecure_hosts

    async def get_text(self, url: str) -> str:
        """GET `url` and return the decoded body.

        Args:
            url: Absolute http(s) URL

        Returns:
            Response body as text

        Raises:
            Unreachable: On transport errors, timeouts, or non-2xx status
        """
        verify = self.verify_tls(url)
        if not verify:
            logger.warning(
                "TLS certificate verification disabled for %s (insecure_tls_hosts)",
                urlsplit(url).hostname,
            )

        logger.debug("GET %s", url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                verify=verify,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            logger.error("Request timeout for %s: %s", url, e)
            raise Unreachable(f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Network error for %s: %s", url, e)
            raise Unreachable(f"Network error: {e}") from e

        logger.debug("Response: %d for %s", response.status_code, url)

        if not response.is_success:
            error_body = response.text[:500]
            logger.error("HTTP error: %d %s - %s", response.status_code, url, error_body)
            raise Unreachable(
                f"Request failed: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
            )

        return response.text

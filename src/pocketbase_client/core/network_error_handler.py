"""Network error classification for the PocketBase client.

Maps httpx transport exceptions onto the client's ``NetworkError`` family
and attaches troubleshooting guidance suitable for console output. The
handler only classifies; it never retries.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List

import httpx

from .errors import (
    DNSResolutionError,
    NetworkConnectionError,
    NetworkError,
    NetworkTimeoutError,
    SSLCertificateError,
)

logger = logging.getLogger(__name__)


@dataclass
class UserGuidance:
    """User guidance information for network errors."""

    error_type: str
    troubleshooting_steps: List[str]
    additional_notes: List[str] = field(default_factory=list)

    def format_for_console(self) -> str:
        """Format guidance for rich console output."""
        content = [f"[bold red]Error Type:[/bold red] {self.error_type}", ""]
        content.append("[bold yellow]Troubleshooting Steps:[/bold yellow]")
        for i, step in enumerate(self.troubleshooting_steps, 1):
            content.append(f"{i}. {step}")

        if self.additional_notes:
            content.append("")
            content.append("[bold blue]Additional Notes:[/bold blue]")
            for note in self.additional_notes:
                content.append(f"• {note}")

        return "\n".join(content)


class UserGuidanceProvider:
    """Provides user guidance for different network error scenarios."""

    def __init__(self):
        self._guidance_mapping: Dict[type, Callable[[], UserGuidance]] = {
            NetworkConnectionError: self._connection_guidance,
            DNSResolutionError: self._dns_guidance,
            SSLCertificateError: self._ssl_guidance,
            NetworkTimeoutError: self._timeout_guidance,
        }

    def get_guidance(self, error: Exception) -> UserGuidance:
        guidance_func = self._guidance_mapping.get(type(error), self._generic_guidance)
        return guidance_func()

    def _connection_guidance(self) -> UserGuidance:
        return UserGuidance(
            error_type="Network Connection Error",
            troubleshooting_steps=[
                "Check that the PocketBase server is running",
                "Verify the server URL (POCKETBASE_URL) is correct",
                "Check your firewall settings",
            ],
            additional_notes=[
                "This error typically indicates the server is not reachable",
            ],
        )

    def _dns_guidance(self) -> UserGuidance:
        return UserGuidance(
            error_type="DNS Resolution Error",
            troubleshooting_steps=[
                "Verify the server hostname is correct",
                "Try using an IP address instead of hostname",
                "Check your DNS server settings",
            ],
            additional_notes=["DNS resolution issues are often temporary"],
        )

    def _ssl_guidance(self) -> UserGuidance:
        return UserGuidance(
            error_type="SSL Certificate Error",
            troubleshooting_steps=[
                "Check if the server certificate is valid and not expired",
                "Verify the server hostname matches the certificate",
                "Check if you need to update your certificate store",
            ],
            additional_notes=[
                "Do not disable certificate verification without proper security review",
            ],
        )

    def _timeout_guidance(self) -> UserGuidance:
        return UserGuidance(
            error_type="Network Timeout Error",
            troubleshooting_steps=[
                "Check your network connection speed and stability",
                "Check if the server is under heavy load",
                "Consider increasing the timeout (POCKETBASE_TIMEOUT)",
            ],
        )

    def _generic_guidance(self) -> UserGuidance:
        return UserGuidance(
            error_type="Unknown Network Error",
            troubleshooting_steps=[
                "Check your network connection",
                "Verify the server is accessible",
            ],
        )


class NetworkErrorHandler:
    """Classifies httpx exceptions into client network errors."""

    def __init__(self):
        self.guidance_provider = UserGuidanceProvider()
        self._dns_error_patterns = [
            r"name.*resolution.*failed",
            r"name.*or.*service.*not.*known",
            r"nodename.*nor.*servname.*provided",
            r"temporary.*failure.*in.*name.*resolution",
            r"getaddrinfo.*failed",
        ]
        self._connection_error_patterns = [
            r"connection.*refused",
            r"connection.*reset",
            r"network.*is.*unreachable",
            r"no.*route.*to.*host",
        ]
        self._ssl_error_patterns = [
            r"ssl.*certificate.*verification.*failed",
            r"certificate.*verify.*failed",
            r"ssl.*handshake.*failed",
            r"bad.*certificate",
        ]

    def classify(self, error: Exception) -> NetworkError:
        """Return the NetworkError matching an httpx exception.

        Args:
            error: The original httpx exception

        Returns:
            NetworkError subclass instance with user guidance attached
        """
        error_message = str(error).lower()

        if isinstance(error, httpx.TimeoutException):
            if isinstance(error, httpx.ConnectTimeout) or "connect" in error_message:
                classified: NetworkError = NetworkTimeoutError(
                    "Connection timed out. Check your network connection or try again later."
                )
            else:
                classified = NetworkTimeoutError(
                    "Request timed out. Check your network connection or try again later."
                )
        elif isinstance(error, httpx.ConnectError):
            classified = self._classify_connect_error(error, error_message)
        elif isinstance(error, (httpx.RemoteProtocolError, httpx.DecodingError)):
            classified = NetworkConnectionError(f"Malformed response from server: {error}")
        elif isinstance(error, httpx.TransportError):
            classified = NetworkConnectionError(f"Network error: {error}")
        else:
            classified = NetworkConnectionError(f"Unknown network error: {error}")

        classified.user_guidance = self.guidance_provider.get_guidance(
            classified
        ).format_for_console()
        logger.debug(f"Classified {type(error).__name__} as {type(classified).__name__}")
        return classified

    def _classify_connect_error(
        self, error: httpx.ConnectError, error_message: str
    ) -> NetworkError:
        if any(re.search(p, error_message) for p in self._dns_error_patterns):
            return DNSResolutionError(
                "Cannot resolve server address. Check your internet connection and server URL."
            )
        if any(re.search(p, error_message) for p in self._ssl_error_patterns):
            return SSLCertificateError(
                "SSL certificate verification failed. Server may be using invalid certificate."
            )
        if any(re.search(p, error_message) for p in self._connection_error_patterns):
            return NetworkConnectionError(
                "Cannot connect to server. Check if server is running and accessible."
            )
        return NetworkConnectionError(f"Connection failed: {error}")

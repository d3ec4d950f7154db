"""HTTP transport layer."""

from qbo_client.http.client import HttpClient

__all__ = ["HttpClient"]

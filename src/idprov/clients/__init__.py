from idprov.clients.base import BaseHTTPClient, PermanentHTTPError, RetryableHTTPError
from idprov.clients.keystone import KeystoneAdminClient

__all__ = ["BaseHTTPClient", "KeystoneAdminClient", "PermanentHTTPError", "RetryableHTTPError"]

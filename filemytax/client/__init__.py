"""Python client for the FileMyTax auth API."""

from filemytax.client.api_client import ApiClient
from filemytax.client.auth_client import AuthClient, AuthClientError, ClientUser
from filemytax.client.session import SingleFlightRefresh, TokenHolder

__all__ = [
    "ApiClient",
    "AuthClient",
    "AuthClientError",
    "ClientUser",
    "SingleFlightRefresh",
    "TokenHolder",
]

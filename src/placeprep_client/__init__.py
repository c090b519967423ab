from .client import PlacePrepClient
from .config import ClientConfig
from .credential_store import ClientStorage, CredentialPair, CredentialStore
from .error_handler import ApiError, NetworkError, ServerError, SessionExpiredError
from .middleware import RequestSpec
from .refresh_coordinator import RefreshState

__all__ = [
    "PlacePrepClient",
    "ClientConfig",
    "ClientStorage",
    "CredentialPair",
    "CredentialStore",
    "ApiError",
    "NetworkError",
    "ServerError",
    "SessionExpiredError",
    "RequestSpec",
    "RefreshState",
]

from .adapters import AiohttpTransport, HttpxTransport, RequestsTransport, Transport
from .auth import AuthDecorator
from .cancel import CancelToken
from .classifier import ResponseClassifier
from .credentials import (
    ClientSecretCredentialSource,
    CredentialSource,
    EnvironmentCredentialSource,
    FunctionCredentialSource,
    TokenCredential,
)
from .env import load_client_config_from_env
from .errors import (
    ApiExecError,
    AuthenticationError,
    ConfigurationError,
    FatalRequestError,
    RequestCanceledError,
    TransportError,
)
from .executor import RequestExecutor
from .policies import RetryPolicy, SecondaryKeyFallback, coerce_retry_policy
from .pool import ClientPool
from .token_cache import TokenCache
from .types import (
    AccessToken,
    AuthStrategy,
    BearerFromCredential,
    ClientConfig,
    ClientSecretCredential,
    FatalError,
    FilterOptions,
    NoAuth,
    NotFound,
    Outcome,
    RawResponse,
    RequestDescriptor,
    RetryConfig,
    StaticKey,
    Success,
    ValidationError,
)

__all__ = [
    "AccessToken",
    "AuthStrategy",
    "NoAuth",
    "StaticKey",
    "BearerFromCredential",
    "ClientSecretCredential",
    "RequestDescriptor",
    "RawResponse",
    "Outcome",
    "Success",
    "NotFound",
    "ValidationError",
    "FatalError",
    "RetryConfig",
    "ClientConfig",
    "FilterOptions",
    "ApiExecError",
    "AuthenticationError",
    "ConfigurationError",
    "FatalRequestError",
    "RequestCanceledError",
    "TransportError",
    "CancelToken",
    "CredentialSource",
    "TokenCredential",
    "ClientSecretCredentialSource",
    "EnvironmentCredentialSource",
    "FunctionCredentialSource",
    "TokenCache",
    "AuthDecorator",
    "ResponseClassifier",
    "RetryPolicy",
    "SecondaryKeyFallback",
    "coerce_retry_policy",
    "ClientPool",
    "Transport",
    "HttpxTransport",
    "AiohttpTransport",
    "RequestsTransport",
    "RequestExecutor",
    "load_client_config_from_env",
]

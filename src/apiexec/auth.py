import logging
import threading
from datetime import timedelta

from .cancel import CancelToken
from .credentials import ClientSecretCredentialSource
from .errors import ConfigurationError
from .token_cache import DEFAULT_EXPIRY_BUFFER, TokenCache
from .types import (
    AuthStrategy,
    BearerFromCredential,
    ClientSecretCredential,
    NoAuth,
    RequestDescriptor,
    StaticKey,
)

AUTHORIZATION_HEADER = "Authorization"
BEARER_SCHEME = "Bearer"


def apply_static_key(descriptor: RequestDescriptor, strategy: StaticKey, key: str) -> RequestDescriptor:
    if strategy.placement == "query":
        return descriptor.with_query(strategy.header_name, key)
    return descriptor.with_header(strategy.header_name, key)


class AuthDecorator:
    """Attach credentials for one AuthStrategy to an outgoing RequestDescriptor.

    - NoAuth: unchanged.
    - StaticKey: key as header or query parameter; an empty key attaches nothing.
    - BearerFromCredential: ``Authorization: Bearer <token>`` from ``token_cache``.
    - ClientSecretCredential: same, from a TokenCache built for its tenant/client/secret.
      Those caches are created once and reused for the decorator's lifetime; a rotated
      secret gets a fresh cache.

    Each decorate() call applies exactly one mechanism. To send several (say, a
    gateway subscription key plus a bearer token) decorate once per strategy.
    """

    def __init__(
        self,
        token_cache: TokenCache | None = None,
        buffer: timedelta = DEFAULT_EXPIRY_BUFFER,
        authority: str | None = None,
        http_client=None,
    ):
        self.token_cache = token_cache
        self.buffer = token_cache.buffer if token_cache is not None else buffer
        self.authority = authority
        self._http_client = http_client
        self._secret_caches: dict[tuple[str, str, str], TokenCache] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger("apiexec")

    def _cache_for_secret(self, strategy: ClientSecretCredential) -> TokenCache:
        cache_key = (strategy.tenant_id.lower(), strategy.client_id.lower(), strategy.secret)
        with self._lock:
            cache = self._secret_caches.get(cache_key)
            if cache is None:
                kwargs = {"http_client": self._http_client}
                if self.authority:
                    kwargs["authority"] = self.authority
                source = ClientSecretCredentialSource(
                    strategy.tenant_id, strategy.client_id, strategy.secret, **kwargs
                )
                cache = TokenCache(source, buffer=self.buffer)
                self._secret_caches[cache_key] = cache
            return cache

    async def _bearer(
        self,
        descriptor: RequestDescriptor,
        cache: TokenCache,
        audience: str,
        cancel: CancelToken | None,
    ) -> RequestDescriptor:
        token = await cache.get_token(audience, cancel)
        self._logger.debug(f"added bearer token authentication audience={audience}")
        return descriptor.with_header(AUTHORIZATION_HEADER, f"{BEARER_SCHEME} {token.token}")

    async def decorate(
        self,
        descriptor: RequestDescriptor,
        strategy: AuthStrategy,
        cancel: CancelToken | None = None,
    ) -> RequestDescriptor:
        if isinstance(strategy, NoAuth):
            return descriptor
        if isinstance(strategy, StaticKey):
            if not strategy.key:
                self._logger.warning("API key authentication requested but no API key is configured")
                return descriptor
            self._logger.debug(f"added API key authentication as {strategy.placement}")
            return apply_static_key(descriptor, strategy, strategy.key)
        if isinstance(strategy, ClientSecretCredential):
            return await self._bearer(
                descriptor, self._cache_for_secret(strategy), strategy.audience, cancel
            )
        if isinstance(strategy, BearerFromCredential):
            if self.token_cache is None:
                raise ConfigurationError(
                    "a TokenCache is required for bearer token authentication"
                )
            return await self._bearer(descriptor, self.token_cache, strategy.audience, cancel)
        raise TypeError(f"Unsupported authentication strategy: {type(strategy).__name__}")

import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

from . import cancel as _cancel
from .cancel import CancelToken
from .env import read_env
from .errors import ConfigurationError
from .types import AccessToken

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
DEFAULT_EXPIRES_IN = 3600

logger = logging.getLogger("apiexec")


@runtime_checkable
class TokenCredential(Protocol):
    async def get_token(
        self, scopes: Sequence[str], cancel: CancelToken | None = None
    ) -> AccessToken: ...


@runtime_checkable
class CredentialSource(Protocol):
    async def get_credential(self, cancel: CancelToken | None = None) -> TokenCredential: ...


# ---------- function-backed ----------


class FunctionCredentialSource:
    """Adapt an ``async fn(scopes) -> AccessToken`` into a CredentialSource."""

    def __init__(self, fn: Callable[[Sequence[str]], Awaitable[AccessToken]]):
        self._fn = fn

    async def get_credential(self, cancel: CancelToken | None = None) -> TokenCredential:
        return self

    async def get_token(
        self, scopes: Sequence[str], cancel: CancelToken | None = None
    ) -> AccessToken:
        return await _cancel.run(self._fn(scopes), cancel)


# ---------- OAuth2 client credentials ----------


class ClientSecretTokenCredential:
    """OAuth2 client-credentials grant against an Entra ID style token endpoint."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        authority: str = DEFAULT_AUTHORITY,
        http_client=None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self._client_secret = client_secret
        self.authority = authority.rstrip("/")
        self._http_client = http_client

    @property
    def token_url(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"

    async def get_token(
        self, scopes: Sequence[str], cancel: CancelToken | None = None
    ) -> AccessToken:
        import httpx  # noqa: PLC0415

        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "scope": " ".join(scopes),
        }
        client = self._http_client
        if client is None:
            async with httpx.AsyncClient() as owned:
                resp = await _cancel.run(owned.post(self.token_url, data=data), cancel)
        else:
            resp = await _cancel.run(client.post(self.token_url, data=data), cancel)
        resp.raise_for_status()
        payload = resp.json()
        token = payload.get("access_token")
        if not token:
            raise ValueError("token endpoint response did not contain an access_token")
        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        return AccessToken(
            token=token, expires_on=datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        )


class ClientSecretCredentialSource:
    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        authority: str = DEFAULT_AUTHORITY,
        http_client=None,
    ):
        if not tenant_id:
            raise ValueError("'tenant_id' cannot be empty")
        if not client_id:
            raise ValueError("'client_id' cannot be empty")
        if not client_secret:
            raise ValueError("'client_secret' cannot be empty")
        self._credential = ClientSecretTokenCredential(
            tenant_id, client_id, client_secret, authority=authority, http_client=http_client
        )

    async def get_credential(self, cancel: CancelToken | None = None) -> TokenCredential:
        if cancel is not None:
            cancel.raise_if_cancelled()
        logger.debug(
            f"creating client secret credential client_id={self._credential.client_id} "
            f"tenant_id={self._credential.tenant_id}"
        )
        return self._credential


# ---------- ambient (environment) ----------


class EnvironmentCredentialSource:
    """Ambient identity: client secret triple read from the environment.

    Looks up ``AZURE_TENANT_ID``, ``AZURE_CLIENT_ID`` and ``AZURE_CLIENT_SECRET``
    (names configurable), optionally augmented by a .env file. The lookup is
    deferred to the first acquisition so a process can be configured late.
    """

    def __init__(
        self,
        env_path: str | None = None,
        tenant_var: str = "AZURE_TENANT_ID",
        client_var: str = "AZURE_CLIENT_ID",
        secret_var: str = "AZURE_CLIENT_SECRET",
        authority: str = DEFAULT_AUTHORITY,
        http_client=None,
    ):
        self.env_path = env_path
        self.tenant_var = tenant_var
        self.client_var = client_var
        self.secret_var = secret_var
        self.authority = authority
        self._http_client = http_client

    async def get_credential(self, cancel: CancelToken | None = None) -> TokenCredential:
        env = read_env(self.env_path)
        tenant = env.get(self.tenant_var)
        client = env.get(self.client_var)
        secret = env.get(self.secret_var)
        missing = [
            name
            for name, value in (
                (self.tenant_var, tenant),
                (self.client_var, client),
                (self.secret_var, secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"environment credential unavailable; missing {', '.join(missing)}"
            )
        source = ClientSecretCredentialSource(
            tenant, client, secret, authority=self.authority, http_client=self._http_client
        )
        return await source.get_credential(cancel)

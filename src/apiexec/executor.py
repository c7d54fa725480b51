import asyncio
import json as _json
import logging
from typing import Any, Union

from . import cancel as _cancel
from .adapters import Transport, coerce_transport
from .auth import AuthDecorator
from .cancel import CancelToken
from .classifier import ResponseClassifier
from .credentials import CredentialSource, EnvironmentCredentialSource
from .env import load_client_config_from_env
from .errors import FatalRequestError, RequestCanceledError, TransportError
from .policies import RetryPolicy, SecondaryKeyFallback, coerce_retry_policy
from .state import RetryState
from .token_cache import DEFAULT_EXPIRY_BUFFER, TokenCache
from .types import (
    BearerFromCredential,
    ClientConfig,
    FatalError,
    FilterOptions,
    Outcome,
    RawResponse,
    RequestDescriptor,
    StaticKey,
)


class RequestExecutor:
    """Build -> authenticate -> send -> classify -> retry-or-return for one API.

    ``execute`` returns Success, NotFound or ValidationError. It raises
    FatalRequestError when the call ends fatally (terminal status or retries
    exhausted), AuthenticationError when no token could be obtained, and
    RequestCanceledError when ``cancel`` fires. Plain asyncio task cancellation
    propagates unchanged.

    Collaborators are injected; the transport keeps one client per base endpoint
    and should be shared by executors talking to the same service.

    Other keywords for kwargs:
    - token_cache: TokenCache used for BearerFromCredential
    - credential_source: builds a TokenCache when token_cache is not given
    - token_expiry_buffer: timedelta for that TokenCache
    - decorator: AuthDecorator (built from token_cache when omitted)
    - classifier: ResponseClassifier
    - retry_policy: None | int | RetryConfig | RetryPolicy (defaults to config.retry)
    - key_fallback: SecondaryKeyFallback | None (legacy 401 resend; on by default)
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Union[Transport, str, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        config.validate()
        self.config = config
        self.transport = coerce_transport(transport)
        self._owns_transport = transport is None or isinstance(transport, str)

        token_cache: TokenCache | None = kwargs.get("token_cache")
        if token_cache is None:
            source: CredentialSource | None = kwargs.get("credential_source")
            if source is None and self._needs_ambient_credential():
                source = EnvironmentCredentialSource()
            if source is not None:
                token_cache = TokenCache(
                    source, buffer=kwargs.get("token_expiry_buffer", DEFAULT_EXPIRY_BUFFER)
                )
        self.token_cache = token_cache
        self.decorator: AuthDecorator = kwargs.get("decorator") or AuthDecorator(
            token_cache, buffer=kwargs.get("token_expiry_buffer", DEFAULT_EXPIRY_BUFFER)
        )
        self.classifier: ResponseClassifier = kwargs.get("classifier") or ResponseClassifier(
            config.success_statuses
        )
        self.retry_policy: RetryPolicy = coerce_retry_policy(
            kwargs.get("retry_policy", config.retry)
        )
        self.key_fallback: SecondaryKeyFallback | None = kwargs.get(
            "key_fallback", SecondaryKeyFallback()
        )
        self._logger = logging.getLogger("apiexec")
        if log_level is not None:
            self._logger.setLevel(log_level)

    def _needs_ambient_credential(self) -> bool:
        strategies = (self.config.auth, *self.config.additional_auth)
        return any(isinstance(s, BearerFromCredential) for s in strategies)

    def _key_strategy(self) -> StaticKey | None:
        for s in (self.config.auth, *self.config.additional_auth):
            if isinstance(s, StaticKey):
                return s
        return None

    @classmethod
    def from_env(
        cls,
        prefix: str = "API_",
        env_path: Union[str, None] = None,
        transport: Union[Transport, str, None] = None,
        **kwargs,
    ) -> "RequestExecutor":
        """Build an executor from ``{prefix}*`` environment variables (see env.py)."""
        config_keys = {
            k: kwargs.pop(k)
            for k in list(kwargs.keys())
            if k in {"base_url", "path_prefix", "auth", "additional_auth", "retry", "success_statuses"}
        }
        config = load_client_config_from_env(prefix=prefix, env_path=env_path, **config_keys)
        if "credential_source" not in kwargs and "token_cache" not in kwargs:
            kwargs["credential_source"] = EnvironmentCredentialSource(env_path=env_path)
        return cls(config, transport=transport, **kwargs)

    @property
    def base_endpoint(self) -> str:
        return self.config.base_endpoint

    async def aclose(self) -> None:
        if self._owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    # ------------------------ Init ------------------------
    def build_request(
        self,
        resource: str,
        method: str = "GET",
        *,
        params=None,
        headers=None,
        body: Union[bytes, str, None] = None,
        json: Any = None,
        filters: Union[FilterOptions, None] = None,
    ) -> RequestDescriptor:
        if not resource or not resource.strip():
            raise ValueError("Resource cannot be null or empty")
        hdrs = list(headers.items() if isinstance(headers, dict) else headers or [])
        query = list(params.items() if isinstance(params, dict) else params or [])
        if filters is not None:
            query.extend(filters.to_query())
        if json is not None:
            if body is not None:
                raise ValueError("Pass either body or json, not both")
            body = _json.dumps(json).encode("utf-8")
            if not any(k.lower() == "content-type" for k, _ in hdrs):
                hdrs.append(("Content-Type", "application/json"))
        if isinstance(body, str):
            body = body.encode("utf-8")
        return RequestDescriptor(
            resource=resource,
            method=method.upper(),
            headers=tuple((str(k), str(v)) for k, v in hdrs),
            query=tuple((str(k), str(v)) for k, v in query),
            body=body,
        )

    # ------------------------ Authenticating ------------------------
    async def authenticate(
        self, descriptor: RequestDescriptor, cancel: CancelToken | None = None
    ) -> RequestDescriptor:
        for strategy in (self.config.auth, *self.config.additional_auth):
            descriptor = await self.decorator.decorate(descriptor, strategy, cancel)
        return descriptor

    # ------------------------ Sending ------------------------
    async def _send(
        self, descriptor: RequestDescriptor, cancel: CancelToken | None
    ) -> tuple[RawResponse | None, FatalError | None]:
        try:
            response = await _cancel.run(
                self.transport.send(self.base_endpoint, descriptor, cancel), cancel
            )
        except TransportError as e:
            return None, self.classifier.classify_exception(e.cause or e)
        return response, None

    # ------------------------ full pipeline ------------------------
    async def execute(
        self,
        resource: str,
        method: str = "GET",
        *,
        params=None,
        headers=None,
        body: Union[bytes, str, None] = None,
        json: Any = None,
        filters: Union[FilterOptions, None] = None,
        cancel: CancelToken | None = None,
    ) -> Outcome:
        descriptor = self.build_request(
            resource, method, params=params, headers=headers, body=body, json=json, filters=filters
        )
        try:
            return await self._execute(descriptor, cancel)
        except (RequestCanceledError, asyncio.CancelledError):
            self._logger.info(f"request {descriptor.method} '{descriptor.resource}' was canceled")
            raise

    async def _execute(self, descriptor: RequestDescriptor, cancel: CancelToken | None) -> Outcome:
        if cancel is not None:
            cancel.raise_if_cancelled()
        prepared = await self.authenticate(descriptor, cancel)

        state = RetryState()
        key_strategy = self._key_strategy()
        while True:
            state.attempt += 1
            self._logger.debug(
                f"req start method={prepared.method} resource={prepared.resource} attempt={state.attempt}"
            )
            response, failure = await self._send(prepared, cancel)

            if (
                response is not None
                and self.key_fallback is not None
                and not state.fallback_used
                and self.key_fallback.applies(
                    key_strategy, response.status_code, response.body, state.attempt
                )
            ):
                state.fallback_used = True
                self._logger.warning(
                    f"primary API key rejected for '{prepared.resource}'; retrying with secondary key"
                )
                prepared = self.key_fallback.rewrite(prepared, key_strategy)
                response, failure = await self._send(prepared, cancel)

            outcome = failure or self.classifier.classify_response(response, prepared.method)
            state.last_outcome = outcome
            self._logger.debug(
                f"req done method={prepared.method} resource={prepared.resource} "
                f"outcome={type(outcome).__name__}"
            )

            if not isinstance(outcome, FatalError):
                return outcome

            if not self.retry_policy.should_retry(outcome, state.attempt):
                self._logger.error(
                    f"HTTP error {outcome.status_code} for {prepared.method} to "
                    f"'{prepared.resource}' after {state.attempt} attempt(s): {outcome.message}"
                )
                raise FatalRequestError(outcome, prepared.resource, prepared.method)

            # ------------------------ Waiting ------------------------
            state.next_delay = self.retry_policy.delay_for(state.attempt)
            status = outcome.status_code if outcome.status_code is not None else "no response"
            self._logger.warning(
                f"Request failed with {status}. Waiting {state.next_delay:.2f}s before next retry. "
                f"Retry attempt {state.attempt}"
            )
            await self._sleep(state.next_delay, cancel)

    async def _sleep(self, delay: float, cancel: CancelToken | None) -> None:
        await _cancel.sleep(delay, cancel)

    # sugar
    async def get(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "GET", **kw)

    async def post(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "POST", **kw)

    async def put(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "PUT", **kw)

    async def patch(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "PATCH", **kw)

    async def delete(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "DELETE", **kw)

    async def head(self, resource: str, **kw) -> Outcome:
        return await self.execute(resource, "HEAD", **kw)

"""Test doubles for code built on apiexec.

    transport = InMemoryTransport()
    transport.add_response("/api/users/123", 200, '{"id": "123"}')
    executor = RequestExecutor(ClientConfig("https://test.local"), transport=transport)
"""

import json
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

from .cancel import CancelToken
from .errors import TransportError
from .types import AccessToken, RawResponse, RequestDescriptor

ResponseLike = RawResponse | BaseException


def _normalize(resource: str) -> str:
    return "/" + resource.strip().lstrip("/").lower()


def make_response(status_code: int, body=b"", headers: dict[str, str] | None = None) -> RawResponse:
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    return RawResponse(status_code, dict(headers or {}), body or b"")


class InMemoryTransport:
    """Transport that answers from configured responses instead of the network.

    Lookup order for a resource: response function, queued responses (consumed
    in order, the last one repeats), default response, then 404. Queued entries
    may be exceptions: a TransportError is raised as-is, anything else is wrapped
    in one. Resource paths compare case-insensitively and ignore a leading slash.
    """

    def __init__(self):
        self._responses: dict[str, list[ResponseLike]] = {}
        self._functions: dict[str, Callable[[RequestDescriptor], RawResponse]] = {}
        self._default: RawResponse | None = None
        self.executed: list[tuple[str, RequestDescriptor]] = []
        self.closed = False

    # ---------- setup ----------
    def add_response(self, resource: str, status_code: int, body=b"", headers=None) -> None:
        self.add_sequence(resource, [make_response(status_code, body, headers)])

    def add_sequence(self, resource: str, responses: Sequence[ResponseLike]) -> None:
        if not resource:
            raise ValueError("resource cannot be empty")
        self._responses[_normalize(resource)] = list(responses)

    def add_response_function(
        self, resource: str, fn: Callable[[RequestDescriptor], RawResponse]
    ) -> None:
        if not resource:
            raise ValueError("resource cannot be empty")
        self._functions[_normalize(resource)] = fn

    def set_default_response(self, status_code: int, body=b"", headers=None) -> None:
        self._default = make_response(status_code, body, headers)

    def clear(self) -> None:
        self._responses.clear()
        self._functions.clear()
        self.executed.clear()
        self._default = None

    # ---------- verification ----------
    def requests_for(self, resource: str) -> list[RequestDescriptor]:
        key = _normalize(resource)
        return [d for r, d in self.executed if _normalize(r) == key]

    def was_called(self, resource: str) -> bool:
        return bool(self.requests_for(resource))

    def was_called_times(self, resource: str, times: int) -> bool:
        return len(self.requests_for(resource)) == times

    # ---------- Transport ----------
    async def send(
        self,
        base_endpoint: str,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None = None,
    ) -> RawResponse:
        if self.closed:
            raise RuntimeError("transport is closed")
        if not base_endpoint:
            raise ValueError("Base URL cannot be null or empty")
        self.executed.append((descriptor.resource, descriptor))
        key = _normalize(descriptor.resource)

        fn = self._functions.get(key)
        if fn is not None:
            return fn(descriptor)
        queue = self._responses.get(key)
        if queue:
            item = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(item, TransportError):
                raise item
            if isinstance(item, BaseException):
                raise TransportError(str(item), item)
            return item
        if self._default is not None:
            return self._default
        return make_response(404, f"No response configured for resource: {descriptor.resource}")

    async def aclose(self) -> None:
        self.closed = True


class _FakeCredential:
    def __init__(self, owner: "FakeCredentialSource"):
        self._owner = owner

    async def get_token(self, scopes, cancel: CancelToken | None = None) -> AccessToken:
        return await self._owner._issue(list(scopes))


class FakeCredentialSource:
    """CredentialSource returning predefined tokens; records every acquisition.

    Tokens default to ``"fake-test-token-<n>"`` so consecutive acquisitions differ.
    ``fail_with`` makes every acquisition raise the given exception.
    """

    def __init__(self, lifetime: timedelta = timedelta(hours=1), fail_with: BaseException | None = None):
        self.lifetime = lifetime
        self.fail_with = fail_with
        self._tokens: dict[str, str] = {}
        self._expiries: dict[str, datetime] = {}
        self.acquisitions: list[str] = []

    def set_token(self, audience: str, token: str, expires_on: datetime | None = None) -> None:
        scope = f"{audience}/.default"
        self._tokens[scope] = token
        if expires_on is not None:
            self._expiries[scope] = expires_on

    def acquisitions_for(self, audience: str) -> int:
        return self.acquisitions.count(f"{audience}/.default")

    async def get_credential(self, cancel: CancelToken | None = None) -> _FakeCredential:
        if cancel is not None:
            cancel.raise_if_cancelled()
        return _FakeCredential(self)

    async def _issue(self, scopes: list[str]) -> AccessToken:
        scope = scopes[0]
        self.acquisitions.append(scope)
        if self.fail_with is not None:
            raise self.fail_with
        token = self._tokens.get(scope) or f"fake-test-token-{len(self.acquisitions)}"
        expires_on = self._expiries.get(scope) or datetime.now(timezone.utc) + self.lifetime
        return AccessToken(token=token, expires_on=expires_on)

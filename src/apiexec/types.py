import json as _json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal, Union

Header = tuple[str, str]
QueryParam = tuple[str, str]


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_on: datetime


# ---------- authentication strategies ----------


@dataclass(frozen=True)
class NoAuth:
    pass


@dataclass(frozen=True)
class StaticKey:
    key: str
    header_name: str = "Ocp-Apim-Subscription-Key"
    placement: Literal["header", "query"] = "header"
    # Legacy: secondary key tried once when the gateway rejects the primary.
    fallback_key: str | None = None

    def __repr__(self) -> str:
        return f"StaticKey(header_name={self.header_name!r}, placement={self.placement!r})"


@dataclass(frozen=True)
class BearerFromCredential:
    audience: str


@dataclass(frozen=True)
class ClientSecretCredential:
    audience: str
    tenant_id: str
    client_id: str
    secret: str = field(repr=False)


AuthStrategy = Union[NoAuth, StaticKey, BearerFromCredential, ClientSecretCredential]


# ---------- request / response ----------


@dataclass(frozen=True)
class RequestDescriptor:
    resource: str
    method: str = "GET"
    headers: tuple[Header, ...] = ()
    query: tuple[QueryParam, ...] = ()
    body: bytes | None = None

    def with_header(self, name: str, value: str) -> "RequestDescriptor":
        return replace(self, headers=(*self.headers, (name, value)))

    def with_query(self, name: str, value: str) -> "RequestDescriptor":
        return replace(self, query=(*self.query, (name, value)))

    def without_header(self, name: str) -> "RequestDescriptor":
        lowered = name.lower()
        return replace(self, headers=tuple(h for h in self.headers if h[0].lower() != lowered))

    def without_query(self, name: str) -> "RequestDescriptor":
        return replace(self, query=tuple(q for q in self.query if q[0] != name))

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for k, v in self.headers:
            if k.lower() == lowered:
                return v
        return None


@dataclass(frozen=True)
class RawResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


# ---------- outcomes ----------


@dataclass(frozen=True)
class Success:
    response: RawResponse

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def text(self) -> str:
        return self.response.text

    def json(self) -> Any:
        return _json.loads(self.response.body) if self.response.body else None


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class ValidationError:
    field_errors: dict[str, list[str]]
    status_code: int = 400

    def all_messages(self) -> list[str]:
        return [f"{name}: {msg}" for name, msgs in self.field_errors.items() for msg in msgs]


@dataclass(frozen=True)
class FatalError:
    status_code: int | None
    message: str
    cause: BaseException | None = None


Outcome = Union[Success, NotFound, ValidationError, FatalError]


# ---------- configuration ----------


@dataclass(frozen=True)
class RetryConfig:
    # max_attempts counts sends; values <= 0 fall back to DEFAULT_MAX_ATTEMPTS
    max_attempts: int = 3

    # delay = base * growth ** attempt, optionally capped
    backoff_base: float = 1.0
    backoff_growth: float = 2.0
    backoff_cap: float | None = None
    # fraction of the delay added as uniform random jitter (never subtracted)
    jitter: float = 0.0

    terminal_statuses: frozenset[int] = frozenset({400, 401, 403, 405, 409, 410, 422})


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    path_prefix: str | None = None
    auth: AuthStrategy = field(default_factory=NoAuth)
    additional_auth: tuple[AuthStrategy, ...] = ()
    retry: RetryConfig = field(default_factory=RetryConfig)
    success_statuses: frozenset[int] = frozenset({200, 201, 204})

    def validate(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise ValueError("base_url must be provided")

    @property
    def base_endpoint(self) -> str:
        base = self.base_url.rstrip("/")
        prefix = (self.path_prefix or "").strip("/")
        return f"{base}/{prefix}" if prefix else base


@dataclass(frozen=True)
class FilterOptions:
    filter: str | None = None
    select: tuple[str, ...] = ()
    expand: tuple[str, ...] = ()
    order_by: str | None = None
    skip: int = 0
    top: int = 0
    count: bool = False

    def to_query(self) -> list[QueryParam]:
        params: list[QueryParam] = []
        if self.filter and self.filter.strip():
            params.append(("$filter", self.filter))
        if self.select:
            params.append(("$select", ",".join(self.select)))
        if self.expand:
            params.append(("$expand", ",".join(self.expand)))
        if self.order_by and self.order_by.strip():
            params.append(("$orderby", self.order_by))
        if self.skip > 0:
            params.append(("$skip", str(self.skip)))
        if self.top > 0:
            params.append(("$top", str(self.top)))
        if self.count:
            params.append(("$count", "true"))
        return params

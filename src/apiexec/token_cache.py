import asyncio
import logging
from datetime import datetime, timedelta, timezone

from . import cancel as _cancel
from .cancel import CancelToken
from .credentials import CredentialSource
from .errors import AuthenticationError, RequestCanceledError
from .types import AccessToken

DEFAULT_EXPIRY_BUFFER = timedelta(minutes=5)
SCOPE_FORMAT = "{}/.default"


class TokenCache:
    """Audience -> AccessToken cache in front of a CredentialSource.

    Tokens are stored with their real expiry; the buffer is applied at lookup, so a
    token is served only while ``now < expires_on - buffer``.

    With ``coalesce=True`` (default) concurrent misses for one audience share a single
    in-flight acquisition. With ``coalesce=False`` each concurrent miss acquires on its
    own and the last one to finish wins the cache slot.
    """

    def __init__(
        self,
        source: CredentialSource,
        buffer: timedelta = DEFAULT_EXPIRY_BUFFER,
        coalesce: bool = True,
    ):
        if buffer < timedelta(0):
            raise ValueError("Token expiry buffer must be non-negative")
        self.source = source
        self.buffer = buffer
        self.coalesce = coalesce
        self._tokens: dict[str, AccessToken] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("apiexec")

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _is_usable(self, token: AccessToken, now: datetime) -> bool:
        try:
            effective = token.expires_on - self.buffer
        except OverflowError:
            # expiry too close to datetime.min to subtract from: treat as expired
            return False
        return now < effective

    def peek(self, audience: str) -> AccessToken | None:
        return self._tokens.get(audience)

    def invalidate(self, audience: str) -> None:
        self._tokens.pop(audience, None)

    def clear(self) -> None:
        self._tokens.clear()

    async def get_token(self, audience: str, cancel: CancelToken | None = None) -> AccessToken:
        if not audience:
            raise ValueError("Audience cannot be empty")
        if cancel is not None:
            cancel.raise_if_cancelled()

        async with self._lock:
            cached = self._tokens.get(audience)
            if cached is not None and self._is_usable(cached, self._now()):
                self._logger.debug(f"token cache hit audience={audience}")
                return cached
            self._logger.debug(
                f"token cache {'refresh' if cached is not None else 'miss'} audience={audience}"
            )
            owner = False
            if not self.coalesce:
                fut = None
            else:
                fut = self._inflight.get(audience)
                owner = fut is None
                if owner:
                    fut = asyncio.get_running_loop().create_future()
                    self._inflight[audience] = fut

        if fut is None:
            return await self._acquire(audience, cancel)
        if not owner:
            # shield so one waiter's cancellation cannot cancel the shared acquisition
            token = await _cancel.run(asyncio.shield(fut), cancel)
            if token is None:
                # the owning call was canceled; acquire on our own behalf
                return await self.get_token(audience, cancel)
            return token

        try:
            token = await self._acquire(audience, cancel)
        except (RequestCanceledError, asyncio.CancelledError):
            async with self._lock:
                self._inflight.pop(audience, None)
            fut.set_result(None)
            raise
        except Exception as e:
            async with self._lock:
                self._inflight.pop(audience, None)
            fut.set_exception(e)
            # the owner re-raises; mark the shared future's exception as retrieved
            fut.exception()
            raise
        async with self._lock:
            self._inflight.pop(audience, None)
        fut.set_result(token)
        return token

    async def _acquire(self, audience: str, cancel: CancelToken | None) -> AccessToken:
        try:
            credential = await _cancel.run(self.source.get_credential(cancel), cancel)
            token = await _cancel.run(
                credential.get_token([SCOPE_FORMAT.format(audience)], cancel), cancel
            )
        except (RequestCanceledError, asyncio.CancelledError):
            raise
        except Exception as e:
            self._logger.error(f"failed to acquire token for audience={audience}: {e}")
            raise AuthenticationError(audience, e) from e

        if token.expires_on.tzinfo is None:
            # naive expiries are taken as UTC so lookups can compare them
            token = AccessToken(token.token, token.expires_on.replace(tzinfo=timezone.utc))
        async with self._lock:
            self._tokens[audience] = token
        self._logger.debug(
            f"acquired and cached token audience={audience} expires_on={token.expires_on.isoformat()}"
        )
        return token

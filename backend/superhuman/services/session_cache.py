"""
Gmail client session cache.

Building a GmailClient per request is wasteful when a user fires several
requests in a row, so authenticated clients are kept in a keyed store:

- key: access token + refresh token (same derivation for lookup and insert)
- value: SessionHandle (client + last-used timestamp)

Handles idle for longer than idle_timeout are dropped by evict_idle(), run
periodically by SessionSweeper. A handle whose credentials Google reports as
revoked is dropped immediately and the caller gets AuthExpiredError.

Dropping a handle only removes the cache's reference: a request already
holding it keeps a working client.

Example:
    cache = SessionCache(idle_timeout=300)
    handle = cache.get_or_create(CredentialPair(access_token=a, refresh_token=r))
    await cache.validate(handle)
    async with cache.guard(handle):
        await handle.client.list_labels()
"""
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

from superhuman.config import get_settings
from superhuman.integrations.gmail_client import GmailClient
from superhuman.models.session import CredentialPair
from superhuman.utils.logger import get_logger
from superhuman.utils.errors import AuthExpiredError, InvalidGrantError

logger = get_logger(__name__)
settings = get_settings()


class SessionHandle:
    """One authenticated Gmail client and when it was last handed out."""

    def __init__(self, key: str, credentials: CredentialPair, client: GmailClient, now: float):
        self.key = key
        self.credentials = credentials
        self.client = client
        self.created_at = now
        self.last_used_at = now
        # Address of the mailbox, filled by the first profile lookup
        self.profile_email: Optional[str] = None

    def touch(self, now: float) -> None:
        self.last_used_at = now

    def idle_for(self, now: float) -> float:
        return now - self.last_used_at

    def __repr__(self) -> str:
        return f"<SessionHandle last_used_at={self.last_used_at:.1f}>"


class SessionCache:
    """
    Keyed store of Gmail clients with idle eviction.

    One instance per process (owned by the FastAPI app); tests build their
    own. get_or_create() never awaits, so under asyncio two requests for the
    same credentials cannot both miss and build duplicate clients.

    Attributes:
        idle_timeout: Seconds a handle may sit unused before eviction
        client_factory: Builds a client from credentials, must not do I/O
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        idle_timeout: Optional[float] = None,
        client_factory: Optional[Callable[[CredentialPair], GmailClient]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.idle_timeout = settings.gmail_session_idle_seconds if idle_timeout is None else idle_timeout
        self.client_factory = client_factory or GmailClient
        self.clock = clock or time.monotonic
        self._handles: Dict[str, SessionHandle] = {}

    # ------------------------------------------------------------------ store

    def get(self, key: str) -> Optional[SessionHandle]:
        return self._handles.get(key)

    def put(self, key: str, handle: SessionHandle) -> None:
        self._handles[key] = handle

    def delete_key(self, key: str) -> bool:
        return self._handles.pop(key, None) is not None

    def sweep(self, now: float) -> List[str]:
        """Remove handles idle strictly longer than idle_timeout; return their keys."""
        expired = [
            key for key, handle in self._handles.items()
            if handle.idle_for(now) > self.idle_timeout
        ]
        for key in expired:
            del self._handles[key]
        return expired

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    # ------------------------------------------------------------- lifecycle

    def get_or_create(self, credentials: CredentialPair) -> SessionHandle:
        """
        Return the cached handle for these credentials, building it on a miss.

        A hit refreshes the handle's idle timer. Never fails: building the
        client does not touch the network.
        """
        key = credentials.cache_key
        now = self.clock()

        handle = self.get(key)
        if handle is not None:
            handle.touch(now)
            return handle

        handle = SessionHandle(key, credentials, self.client_factory(credentials), now)
        self.put(key, handle)
        logger.debug(f"Created Gmail session handle ({len(self)} cached)")
        return handle

    def evict(self, handle: SessionHandle) -> bool:
        """Drop this handle, leaving a newer handle under the same key alone."""
        if self.get(handle.key) is handle:
            return self.delete_key(handle.key)
        return False

    def invalidate(self, credentials: CredentialPair) -> bool:
        return self.delete_key(credentials.cache_key)

    def evict_idle(self, now: Optional[float] = None) -> int:
        """Evict every idle handle; returns how many were removed."""
        removed = self.sweep(self.clock() if now is None else now)
        if removed:
            logger.info(f"Evicted {len(removed)} idle Gmail session(s), {len(self)} left")
        return len(removed)

    @asynccontextmanager
    async def guard(self, handle: SessionHandle):
        """
        Run provider calls against a handle.

        InvalidGrantError evicts the handle and becomes AuthExpiredError;
        every other error passes through and leaves the cache alone.
        """
        try:
            yield handle.client
        except InvalidGrantError as e:
            self.evict(handle)
            logger.warning("Gmail credentials revoked, session handle evicted")
            raise AuthExpiredError() from e

    async def validate(self, handle: SessionHandle) -> None:
        """
        Check the credentials with a cheap read-only provider call.

        Raises:
            AuthExpiredError: Credentials revoked (handle evicted)
            ProviderError: Any other provider failure (cache untouched)
        """
        async with self.guard(handle) as client:
            profile = await client.get_profile()
        handle.profile_email = profile.get("emailAddress", handle.profile_email)


class SessionSweeper:
    """
    Periodic idle eviction for a SessionCache.

    Started and stopped explicitly by the hosting process (the app lifespan);
    nothing runs at import time.
    """

    def __init__(self, cache: SessionCache, interval: Optional[float] = None):
        self.cache = cache
        self.interval = settings.gmail_session_sweep_seconds if interval is None else interval
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="gmail-session-sweep")
        logger.debug(f"Session sweeper started (every {self.interval}s)")

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._stop.is_set():
                break
            try:
                self.cache.evict_idle()
            except Exception:  # pragma: no cover
                logger.exception("Session sweep failed")

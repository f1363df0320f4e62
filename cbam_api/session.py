"""
session.py – Session manager over the hosted identity provider (Supabase Auth).

The Supabase client is synchronous, so every provider call runs in a worker
thread via ``asyncio.to_thread``. Provider notifications
(``on_auth_state_change``) can fire on those worker threads; they are handed
back to the event loop with ``call_soon_threadsafe`` so they are applied in
arrival order on one thread.

Ordering rule
─────────────
The cached session is written by provider notifications. An explicit call
(sign-in, sign-out, sign-up) only writes it when no notification arrived
while the call was in flight; otherwise the notification is newer and wins.
Either way every change goes out once on the session-change channel.

Until ``start()`` has finished, callers of ``get_current_session()`` wait
(bounded by the init timeout) instead of being told "not logged in".
Network and initialisation failures raise ``ServiceUnavailableError``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
from supabase import AuthError as ProviderAuthError
from supabase import create_client

from cbam_calculator.config import Config
from cbam_calculator.constants import DEFAULT_AUTH_INIT_TIMEOUT
from cbam_calculator.validators import validate_credentials

from .errors import AuthError, ServiceUnavailableError

logger = logging.getLogger(__name__)

# Session-change events
INITIAL_SESSION = "INITIAL_SESSION"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class UserSession:
    """Read-only copy of the provider session. Never persisted."""

    user_id: str
    email: str | None = None
    access_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_provider(cls, session: Any) -> UserSession | None:
        user = getattr(session, "user", None) if session is not None else None
        if user is None or not getattr(user, "id", None):
            return None
        return cls(
            user_id=str(user.id),
            email=getattr(user, "email", None),
            access_token=getattr(session, "access_token", None),
        )

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "email": self.email}


SessionHandler = Callable[[str, "UserSession | None"], None]


def _event_name(event: Any) -> str:
    return str(getattr(event, "value", event))


class SessionManager:
    """Async facade over a Supabase client's ``auth`` namespace."""

    def __init__(
        self,
        client_factory: Callable[[], Any],
        init_timeout: float = DEFAULT_AUTH_INIT_TIMEOUT,
    ) -> None:
        self._client_factory = client_factory
        self._init_timeout = init_timeout
        self._client: Any = None
        self._subscription: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready = asyncio.Event()
        self._init_error: str | None = None
        self._session: UserSession | None = None
        self._event_seq = 0
        self._handlers: list[SessionHandler] = []

    @classmethod
    def from_config(cls, config: Config) -> SessionManager:
        def factory():
            return create_client(config.supabase_url, config.supabase_anon_key)

        return cls(factory, init_timeout=config.auth_init_timeout)

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    # ─────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Create the provider client, subscribe to it and restore the session."""
        self._loop = asyncio.get_running_loop()
        try:
            client = await asyncio.to_thread(self._client_factory)
            self._subscription = client.auth.on_auth_state_change(self._on_provider_event)
            initial = await asyncio.to_thread(client.auth.get_session)
        except Exception as exc:  # noqa: BLE001
            self._init_error = f"Authentication service unavailable: {exc}"
            logger.error("Identity provider initialisation failed: %s", exc)
        else:
            self._client = client
            self._apply_event(INITIAL_SESSION, UserSession.from_provider(initial))
            logger.info(
                "Identity provider ready (%s)",
                f"session for {self._session.email}" if self._session else "no session",
            )
        finally:
            self._ready.set()

    def close(self) -> None:
        """Cancel the provider subscription."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # ─────────────────────────────────────────────────────────
    # Session-change channel
    # ─────────────────────────────────────────────────────────

    def on_session_change(self, handler: SessionHandler) -> Callable[[], None]:
        """
        Register *handler(event, session_or_None)*; return a function that
        unregisters it.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _on_provider_event(self, event: Any, session: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._apply_event, _event_name(event), UserSession.from_provider(session))

    def _apply_event(self, event: str, session: UserSession | None) -> None:
        self._event_seq += 1
        self._session = None if event == SIGNED_OUT else session
        logger.debug("Session event %s (user=%s)", event, session.user_id if session else None)
        for handler in list(self._handlers):
            try:
                handler(event, self._session)
            except Exception:  # noqa: BLE001
                logger.exception("Session change handler failed for %s", event)

    def _adopt(self, seq: int, event: str, session: UserSession | None) -> None:
        """Apply an explicit call's outcome unless a newer notification arrived."""
        if self._event_seq == seq:
            self._apply_event(event, session)

    # ─────────────────────────────────────────────────────────
    # Provider calls
    # ─────────────────────────────────────────────────────────

    async def _wait_ready(self) -> None:
        if not self._ready.is_set():
            try:
                await asyncio.wait_for(self._ready.wait(), self._init_timeout)
            except asyncio.TimeoutError as exc:
                raise ServiceUnavailableError("Authentication service is still initialising") from exc
        if self._init_error is not None:
            raise ServiceUnavailableError(self._init_error)

    async def _ready_client(self) -> Any:
        await self._wait_ready()
        return self._client

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except httpx.TransportError as exc:
            raise ServiceUnavailableError(f"Authentication service unreachable: {exc}") from exc
        except ProviderAuthError as exc:
            message = getattr(exc, "message", None) or str(exc)
            status = getattr(exc, "status", None)
            # status 0 is how the provider SDK reports a failed fetch
            if isinstance(status, int) and (status == 0 or status >= 500):
                raise ServiceUnavailableError(message) from exc
            raise AuthError(message) from exc

    async def sign_up(self, email: str, password: str) -> UserSession | None:
        """
        Create an account. Returns the new session, or None when the provider
        wants the email address confirmed first.
        """
        problems = validate_credentials(email, password)
        if problems:
            raise AuthError(problems[0])
        client = await self._ready_client()
        seq = self._event_seq
        response = await self._call(client.auth.sign_up, {"email": email.strip(), "password": password})
        session = UserSession.from_provider(getattr(response, "session", None))
        if session is not None:
            self._adopt(seq, SIGNED_IN, session)
        logger.info("Sign-up for %s (%s)", email, "signed in" if session else "confirmation pending")
        return session

    async def sign_in(self, email: str, password: str) -> UserSession:
        if not email or not password:
            raise AuthError("Please enter email and password")
        client = await self._ready_client()
        seq = self._event_seq
        response = await self._call(
            client.auth.sign_in_with_password, {"email": email.strip(), "password": password}
        )
        session = UserSession.from_provider(getattr(response, "session", None))
        if session is None:
            raise AuthError("Sign in failed")
        self._adopt(seq, SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        client = await self._ready_client()
        seq = self._event_seq
        await self._call(client.auth.sign_out)
        self._adopt(seq, SIGNED_OUT, None)

    async def get_current_session(self) -> UserSession | None:
        """Cached session; waits for initialisation instead of guessing."""
        await self._wait_ready()
        return self._session

    async def get_current_user(self) -> UserSession | None:
        """
        Confirm the cached session with the provider.

        Returns None when signed out or when the provider no longer accepts
        the session token.
        """
        session = await self.get_current_session()
        if session is None:
            return None
        client = await self._ready_client()
        try:
            response = await self._call(client.auth.get_user, session.access_token)
        except AuthError as exc:
            logger.info("Stored session rejected by provider: %s", exc.message)
            return None
        user = getattr(response, "user", None)
        if user is None:
            return None
        return UserSession(user_id=str(user.id), email=getattr(user, "email", None), access_token=session.access_token)

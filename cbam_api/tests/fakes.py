"""
In-memory stand-ins for the Supabase client, shared by the cbam_api tests.

FakeAuth mirrors the slice of ``client.auth`` the session manager uses and
fires on_auth_state_change callbacks the way the SDK does: synchronously,
from whichever thread made the call.
"""
from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

from supabase import AuthError as ProviderAuthError

from cbam_calculator.schemas import InputSnapshot, PersistedReport


class FakeProviderError(ProviderAuthError):
    """Provider error with a fixed HTTP status; skips the SDK constructor."""

    def __init__(self, message: str, status: int = 400) -> None:
        Exception.__init__(self, message)
        self.message = message
        self.status = status


def make_provider_session(user_id="user-1", email="ops@example.com", token="tok-1"):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, email=email),
        access_token=token,
    )


class FakeSubscription:
    def __init__(self, auth: "FakeAuth", callback) -> None:
        self._auth = auth
        self._callback = callback
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True
        if self._callback in self._auth.listeners:
            self._auth.listeners.remove(self._callback)


class FakeAuth:
    def __init__(self, session=None, accounts=None, confirm_email=False) -> None:
        self.session = session
        self.accounts = dict(accounts or {})      # email → password
        self.confirm_email = confirm_email
        self.listeners = []
        self.revoked_tokens = set()
        self.fail_with = None                      # raised by every call when set
        self.emit_on_sign_in = True
        self.subscriptions = []

    # -- SDK surface --

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        sub = FakeSubscription(self, callback)
        self.subscriptions.append(sub)
        return SimpleNamespace(subscription=sub, unsubscribe=sub.unsubscribe)

    def get_session(self):
        self._maybe_fail()
        return self.session

    def sign_up(self, credentials):
        self._maybe_fail()
        email = credentials["email"]
        if email in self.accounts:
            raise FakeProviderError("User already registered", 422)
        self.accounts[email] = credentials["password"]
        if self.confirm_email:
            return SimpleNamespace(user=SimpleNamespace(id=f"id-{email}", email=email), session=None)
        self.session = make_provider_session(f"id-{email}", email, f"tok-{email}")
        self.emit("SIGNED_IN", self.session)
        return SimpleNamespace(user=self.session.user, session=self.session)

    def sign_in_with_password(self, credentials):
        self._maybe_fail()
        email = credentials["email"]
        if self.accounts.get(email) != credentials["password"]:
            raise FakeProviderError("Invalid login credentials", 400)
        self.session = make_provider_session(f"id-{email}", email, f"tok-{email}")
        if self.emit_on_sign_in:
            self.emit("SIGNED_IN", self.session)
        return SimpleNamespace(user=self.session.user, session=self.session)

    def sign_out(self):
        self._maybe_fail()
        self.session = None
        self.emit("SIGNED_OUT", None)

    def get_user(self, jwt=None):
        self._maybe_fail()
        if jwt in self.revoked_tokens:
            raise FakeProviderError("invalid JWT", 401)
        if self.session is None or self.session.access_token != jwt:
            return None
        return SimpleNamespace(user=self.session.user)

    # -- test helpers --

    def emit(self, event, session):
        for callback in list(self.listeners):
            callback(event, session)

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with


class FakeClient:
    def __init__(self, auth: FakeAuth | None = None) -> None:
        self.auth = auth or FakeAuth()


class RecordingSaver:
    """save_report stand-in: remembers its calls, returns a fixed report."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def __call__(self, calc_input, result, owner_user_id):
        self.calls.append((calc_input, result, owner_user_id))
        if self.error is not None:
            raise self.error
        return PersistedReport(
            id="report-1",
            user_id=owner_user_id,
            cn_code=result.cn_code,
            product_type=result.product_type,
            production_qty=result.production_qty,
            input_data=InputSnapshot(
                electricity=calc_input.electricity,
                diesel=calc_input.diesel,
                coal=calc_input.coal,
                precursors=calc_input.precursors,
            ),
            total_emissions=result.total,
            intensity=result.intensity,
            created_at=datetime(2026, 1, 15, tzinfo=timezone.utc),
        )

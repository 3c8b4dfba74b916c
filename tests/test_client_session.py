# tests/test_client_session.py
"""Client session against the app in-process (ASGITransport)."""
import asyncio

import httpx
import pytest

from vigora.client.session import AuthSession, IncompleteAuthResponse
from vigora.client.token_store import TokenStore
from vigora.models.qr_login import QrLoginStatus
from vigora.schemas.auth import AuthResponse
from tests.helpers import PASSWORD

pytestmark = pytest.mark.asyncio


async def _logged_in(api_factory, user) -> AuthSession:
    session = AuthSession(api_factory(TokenStore()))
    await session.login(user.username, PASSWORD)
    return session


async def test_login_sets_user_and_tokens(api_factory, user):
    session = await _logged_in(api_factory, user)
    assert session.is_authenticated
    assert session.user.id == user.id
    me = await session.api.me()
    assert me.username == user.username


async def test_register_logs_in(api_factory):
    session = AuthSession(api_factory())
    created = await session.register("fresh_user", "Fresh@Example.com", PASSWORD, "Fresh", "User")
    assert created.email == "fresh@example.com"
    assert session.is_authenticated


async def test_wrong_password_raises_and_stays_anonymous(api_factory, user):
    session = AuthSession(api_factory())
    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await session.login(user.username, "wrong-password")
    assert exc_info.value.response.status_code == 401
    assert not session.is_authenticated


async def test_qr_login_approved_elsewhere(api_factory, user):
    approver = await _logged_in(api_factory, user)
    requester = AuthSession(api_factory(), poll_interval=0)
    shown = []
    sleeps = 0

    async def sleep(_):
        nonlocal sleeps
        sleeps += 1
        # the other device approves after the first PENDING answer
        if sleeps == 2:
            await approver.approve_qr(shown[0].code)

    result = await requester.login_with_qr(on_code=shown.append, sleep=sleep)

    assert result.status is QrLoginStatus.APPROVED
    assert requester.is_authenticated
    assert requester.user.id == user.id
    assert (await requester.api.me()).id == user.id
    # approver stays logged in
    assert approver.is_authenticated


async def test_qr_login_rejected_applies_nothing(api_factory, user):
    approver = await _logged_in(api_factory, user)
    requester = AuthSession(api_factory(), poll_interval=0)
    shown = []
    sleeps = 0

    async def sleep(_):
        nonlocal sleeps
        sleeps += 1
        if sleeps == 2:
            await approver.reject_qr(shown[0].code)

    result = await requester.login_with_qr(on_code=shown.append, sleep=sleep)

    assert result.status is QrLoginStatus.REJECTED
    assert requester.user is None
    assert requester.tokens.access_token is None


async def test_cancel_qr_login(api_factory):
    session = AuthSession(api_factory())
    polling = asyncio.Event()

    async def sleep(_):
        polling.set()
        await asyncio.Event().wait()

    task = asyncio.ensure_future(session.login_with_qr(sleep=sleep))
    await asyncio.wait_for(polling.wait(), timeout=5)
    session.cancel_qr_login()
    result = await asyncio.wait_for(task, timeout=5)

    assert result.status is QrLoginStatus.EXPIRED
    assert result.message == "Cancelled"
    assert not session.is_authenticated


async def test_scan_login_token_is_single_use(api_factory, user):
    shower = await _logged_in(api_factory, user)
    shown = await shower.show_login_qr()
    assert shower.displayed_qr == shown

    scanner = AuthSession(api_factory())
    logged_in = await scanner.scan_login(shown.token)
    assert logged_in.id == user.id
    assert scanner.is_authenticated

    second = AuthSession(api_factory())
    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await second.scan_login(shown.token)
    assert exc_info.value.response.status_code == 404
    assert not second.is_authenticated


async def test_expired_access_token_is_refreshed_transparently(api_factory, user):
    source = await _logged_in(api_factory, user)
    refresh_token = source.tokens.refresh_token

    tokens = TokenStore("not-a-jwt", refresh_token)
    session = AuthSession(api_factory(tokens))
    me = await session.api.me()

    assert me.id == user.id
    assert tokens.access_token != "not-a-jwt"
    # rotated
    assert tokens.refresh_token != refresh_token


async def test_restore_resumes_stored_session(api_factory, user):
    source = await _logged_in(api_factory, user)
    session = AuthSession(api_factory(TokenStore(None, source.tokens.refresh_token)))

    restored = await session.restore()

    assert restored.id == user.id
    assert session.is_authenticated


async def test_restore_with_dead_refresh_token_logs_out(api_factory):
    tokens = TokenStore("stale", "garbage")
    cleared = []
    tokens.subscribe(lambda: cleared.append(1))
    session = AuthSession(api_factory(tokens))

    assert await session.restore() is None
    assert tokens.refresh_token is None
    assert not session.is_authenticated
    assert cleared


async def test_restore_without_tokens_is_noop(api_factory):
    session = AuthSession(api_factory())
    assert await session.restore() is None


async def test_cleared_tokens_reset_session(api_factory, user):
    session = await _logged_in(api_factory, user)
    await session.show_login_qr()

    session.tokens.clear()

    assert session.user is None
    assert session.displayed_qr is None
    assert not session.is_authenticated


async def test_close_unsubscribes(api_factory, user):
    session = await _logged_in(api_factory, user)
    session.close()
    session.tokens.clear()
    # no longer listening
    assert session.user is not None


async def test_incomplete_auth_payload_is_rejected(api_factory):
    session = AuthSession(api_factory())
    partial = AuthResponse.model_construct(user=None, access_token="a", refresh_token="r")
    with pytest.raises(IncompleteAuthResponse):
        session.apply_auth_response(partial)
    assert session.tokens.access_token is None

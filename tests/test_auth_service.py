# tests/test_auth_service.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update, func

from eventhub.core.exceptions import APIException
from eventhub.core.security import (
    create_password_reset_token, create_access_token, create_refresh_token, decode_access_token
)
from eventhub.infrastructure.database.models import User, UserRole, RefreshToken
from eventhub.infrastructure.database.repositories import CredentialStore
from eventhub.services import auth_service
from conftest import otp_from, reset_token_from


async def _count_users(db_session, email: str) -> int:
    result = await db_session.execute(select(func.count()).select_from(User).where(User.email == email))
    return result.scalar_one()

async def _login(store, otp_service, notifier, email="ali@eventhub.io", password="Passw0rd"):
    await auth_service.signin_with_password(store, otp_service, email, password)
    code = otp_from(notifier.last_to(email))
    return await auth_service.verify_login_otp(store, otp_service, email, code)

def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# =========================
# Signup
# =========================

async def test_signup_creates_participant(store, db_session):
    result = await auth_service.signup(store, "Ali", "ali@eventhub.io", "03001234567", "Passw0rd")

    assert result.success is True
    assert result.role == UserRole.PARTICIPANT
    assert result.message == "Signup successful. You can now log in."
    assert await _count_users(db_session, "ali@eventhub.io") == 1

    user = await store.find_user_by_email("ali@eventhub.io")
    assert user.id == result.user_id
    assert user.hashed_password != "Passw0rd"


async def test_signup_with_explicit_role(store):
    result = await auth_service.signup(store, "Sara", "sara@eventhub.io", "+923001234567", "Passw0rd", role="ORGANIZER")
    assert result.role == UserRole.ORGANIZER


async def test_signup_with_unknown_role_falls_back(store):
    result = await auth_service.signup(store, "Sara", "sara@eventhub.io", "03001234567", "Passw0rd", role="OWNER")
    assert result.role == UserRole.PARTICIPANT


async def test_duplicate_signup_is_rejected(store, db_session):
    await auth_service.signup(store, "Ali", "ali@eventhub.io", "03001234567", "Passw0rd")

    with pytest.raises(APIException) as exc_info:
        await auth_service.signup(store, "Ali Again", "ali@eventhub.io", "03007654321", "0therPass")
    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Email already registered"
    assert await _count_users(db_session, "ali@eventhub.io") == 1


@pytest.mark.parametrize("email, phone, password, message", [
    ("bad-email", "03001234567", "Passw0rd", "Invalid email"),
    ("ali@eventhub.io", "12345", "Passw0rd", "Phone number must be in format +92XXXXXXXXXX or 03XXXXXXXXX"),
    ("ali@eventhub.io", "03001234567", "password", "Password must be at least 8 characters long and contain letters and numbers"),
])
async def test_signup_validation(store, email, phone, password, message):
    with pytest.raises(APIException) as exc_info:
        await auth_service.signup(store, "Ali", email, phone, password)
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == message


# =========================
# Two-step signin
# =========================

async def test_signin_sends_otp_and_issues_no_tokens(store, otp_service, notifier, make_user):
    await make_user()
    result = await auth_service.signin_with_password(store, otp_service, "ali@eventhub.io", "Passw0rd")

    assert result.success is True
    assert result.message == "OTP sent to your email. Please verify to complete login."
    assert len(notifier.sent) == 1
    assert notifier.sent[0].to_email == "ali@eventhub.io"


async def test_signin_unknown_user(store, otp_service):
    with pytest.raises(APIException) as exc_info:
        await auth_service.signin_with_password(store, otp_service, "ghost@eventhub.io", "Passw0rd")
    assert exc_info.value.status_code == 404


async def test_signin_wrong_password(store, otp_service, notifier, make_user):
    await make_user()
    with pytest.raises(APIException) as exc_info:
        await auth_service.signin_with_password(store, otp_service, "ali@eventhub.io", "Wr0ngPass")
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid password"
    assert notifier.sent == []


async def test_signin_short_password(store, otp_service, make_user):
    await make_user()
    with pytest.raises(APIException) as exc_info:
        await auth_service.signin_with_password(store, otp_service, "ali@eventhub.io", "short")
    assert exc_info.value.status_code == 400


async def test_verify_login_otp_wrong_then_right(store, otp_service, notifier, make_user):
    user = await make_user()
    await auth_service.signin_with_password(store, otp_service, user.email, "Passw0rd")
    code = otp_from(notifier.last_to(user.email))
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(APIException) as exc_info:
        await auth_service.verify_login_otp(store, otp_service, user.email, wrong)
    assert exc_info.value.status_code == 401

    result = await auth_service.verify_login_otp(store, otp_service, user.email, code)
    assert result.message == "Login successful"
    assert result.user.id == user.id
    assert result.user.email == user.email
    assert result.user.role == UserRole.PARTICIPANT
    assert result.access_token and result.refresh_token
    assert result.token_type == "bearer"

    record = await store.find_refresh_token_by_value(result.refresh_token)
    assert record is not None
    assert record.user_id == user.id
    assert not record.revoked
    expected = datetime.now(timezone.utc) + timedelta(days=7)
    assert abs(_as_utc(record.expires_at) - expected) < timedelta(minutes=1)

    payload = await decode_access_token(result.access_token)
    assert payload.sub == str(user.id)


async def test_login_code_cannot_be_replayed(store, otp_service, notifier, make_user):
    user = await make_user()
    await auth_service.signin_with_password(store, otp_service, user.email, "Passw0rd")
    code = otp_from(notifier.last_to(user.email))
    await auth_service.verify_login_otp(store, otp_service, user.email, code)

    with pytest.raises(APIException) as exc_info:
        await auth_service.verify_login_otp(store, otp_service, user.email, code)
    assert exc_info.value.name == "otp_not_found"


async def test_verify_login_otp_requires_code(store, otp_service, make_user):
    await make_user()
    with pytest.raises(APIException) as exc_info:
        await auth_service.verify_login_otp(store, otp_service, "ali@eventhub.io", "  ")
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "OTP is required"


async def test_second_login_replaces_refresh_token(store, otp_service, notifier, db_session, make_user):
    user = await make_user()
    first = await _login(store, otp_service, notifier)
    second = await _login(store, otp_service, notifier)

    assert first.refresh_token != second.refresh_token
    assert await store.find_refresh_token_by_value(first.refresh_token) is None
    rows = await db_session.execute(select(func.count()).select_from(RefreshToken).where(RefreshToken.user_id == user.id))
    assert rows.scalar_one() == 1


# =========================
# Refresh rotation
# =========================

async def test_refresh_rotates_in_place(store, otp_service, notifier, make_user):
    await make_user()
    login = await _login(store, otp_service, notifier)
    before = await store.find_refresh_token_by_value(login.refresh_token)

    result = await auth_service.refresh_access_token(store, login.refresh_token)
    assert result.message == "Token refreshed successfully."
    assert result.refresh_token != login.refresh_token

    after = await store.find_refresh_token_by_value(result.refresh_token)
    assert after.id == before.id

    with pytest.raises(APIException) as exc_info:
        await auth_service.refresh_access_token(store, login.refresh_token)
    assert exc_info.value.message == "Invalid refresh token"


@pytest.mark.parametrize("token", ["", "   ", "not-a-token"])
async def test_refresh_rejects_unknown_tokens(store, token):
    with pytest.raises(APIException) as exc_info:
        await auth_service.refresh_access_token(store, token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid refresh token"


async def test_refresh_with_expired_row_leaves_row_untouched(store, otp_service, notifier, db_session, make_user):
    await make_user()
    login = await _login(store, otp_service, notifier)
    expired_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await db_session.execute(
        update(RefreshToken).where(RefreshToken.token == login.refresh_token).values(expires_at=expired_at)
    )
    await db_session.commit()

    with pytest.raises(APIException) as exc_info:
        await auth_service.refresh_access_token(store, login.refresh_token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Refresh token expired or revoked"

    record = await store.find_refresh_token_by_value(login.refresh_token)
    assert record is not None
    assert record.token == login.refresh_token
    assert abs(_as_utc(record.expires_at) - expired_at) < timedelta(seconds=1)


async def test_refresh_with_revoked_row(store, otp_service, notifier, db_session, make_user):
    await make_user()
    login = await _login(store, otp_service, notifier)
    await db_session.execute(
        update(RefreshToken).where(RefreshToken.token == login.refresh_token).values(revoked=True)
    )
    await db_session.commit()

    with pytest.raises(APIException) as exc_info:
        await auth_service.refresh_access_token(store, login.refresh_token)
    assert exc_info.value.name == "expired_or_revoked"


async def _store_live_row(store, user_id: int, token: str) -> None:
    await store.upsert_refresh_token_by_user(user_id, token, datetime.now(timezone.utc) + timedelta(days=7))


async def _refresh_rejected(store, token: str) -> APIException:
    with pytest.raises(APIException) as exc_info:
        await auth_service.refresh_access_token(store, token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid refresh token"
    assert exc_info.value.name == "invalid_token"
    return exc_info.value


async def test_live_row_with_unsigned_token_is_rejected(store, make_user):
    user = await make_user()
    await _store_live_row(store, user.id, "forged-token")

    await _refresh_rejected(store, "forged-token")
    assert (await store.find_refresh_token_by_value("forged-token")).user_id == user.id


async def test_live_row_with_access_token_is_rejected(store, make_user):
    user = await make_user()
    access = await create_access_token(user.id, user.role.value)
    await _store_live_row(store, user.id, access)

    await _refresh_rejected(store, access)


async def test_live_row_with_expired_jwt_is_rejected(store, make_user):
    user = await make_user()
    stale = await create_refresh_token(user.id, user.role.value, expires_delta=timedelta(minutes=-1))
    await _store_live_row(store, user.id, stale)

    await _refresh_rejected(store, stale)
    assert await store.find_refresh_token_by_value(stale) is not None


async def test_live_row_owned_by_another_user_is_rejected(store, make_user):
    owner = await make_user()
    other = await make_user(email="sara@eventhub.io", full_name="Sara")
    token_for_other = await create_refresh_token(other.id, other.role.value)
    await _store_live_row(store, owner.id, token_for_other)

    await _refresh_rejected(store, token_for_other)
    assert (await store.find_refresh_token_by_value(token_for_other)).user_id == owner.id


async def test_conditional_rotation_applies_once(store, otp_service, notifier, make_user):
    await make_user()
    login = await _login(store, otp_service, notifier)
    record = await store.find_refresh_token_by_value(login.refresh_token)
    expires_at = datetime.now(timezone.utc) + timedelta(days=7)

    assert await store.update_refresh_token_by_id(record.id, login.refresh_token, "rotated-1", expires_at)
    assert not await store.update_refresh_token_by_id(record.id, login.refresh_token, "rotated-2", expires_at)
    assert (await store.find_refresh_token_by_value("rotated-1")).id == record.id
    assert await store.find_refresh_token_by_value("rotated-2") is None


async def test_interleaved_refresh_has_single_winner(store, otp_service, notifier, session_factory, make_user):
    user = await make_user()
    login = await _login(store, otp_service, notifier)
    winners = []

    async with session_factory() as session_a, session_factory() as session_b:
        store_a, store_b = CredentialStore(session_a), CredentialStore(session_b)
        original_find = store_b.find_refresh_token_by_value

        # The slower request reads the row, then the faster one rotates it.
        async def _find_then_lose_race(token):
            record = await original_find(token)
            winners.append(await auth_service.refresh_access_token(store_a, token))
            return record

        store_b.find_refresh_token_by_value = _find_then_lose_race
        with pytest.raises(APIException) as exc_info:
            await auth_service.refresh_access_token(store_b, login.refresh_token)

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid refresh token"
    assert len(winners) == 1

    async with session_factory() as session:
        rows = (await session.execute(select(RefreshToken).where(RefreshToken.user_id == user.id))).scalars().all()
    assert len(rows) == 1
    assert rows[0].token == winners[0].refresh_token


# =========================
# Logout
# =========================

async def test_logout_removes_refresh_token(store, otp_service, notifier, make_user):
    user = await make_user()
    login = await _login(store, otp_service, notifier)

    result = await auth_service.logout(store, user.id)
    assert result == {"full_name": "Ali"}
    assert await store.find_refresh_token_by_value(login.refresh_token) is None

    with pytest.raises(APIException):
        await auth_service.refresh_access_token(store, login.refresh_token)


async def test_logout_unknown_user(store):
    with pytest.raises(APIException) as exc_info:
        await auth_service.logout(store, 999)
    assert exc_info.value.status_code == 404


# =========================
# Password reset
# =========================

async def test_password_reset_flow(store, otp_service, notifier, make_user):
    user = await make_user()
    result = await auth_service.request_password_reset(store, notifier, user.email)
    assert result == {"success": True, "message": "Password reset link sent to email"}

    message = notifier.last_to(user.email)
    assert message.subject == "Password Reset Request"
    assert "http://localhost:3000/api/auth/verify-reset?token=" in message.text_body
    token = reset_token_from(message)

    result = await auth_service.reset_password(store, token, "N3wPassword")
    assert result == {"success": True, "message": "Password reset successful"}

    with pytest.raises(APIException):
        await auth_service.signin_with_password(store, otp_service, user.email, "Passw0rd")
    await auth_service.signin_with_password(store, otp_service, user.email, "N3wPassword")


async def test_password_reset_request_validation(store, notifier):
    with pytest.raises(APIException) as exc_info:
        await auth_service.request_password_reset(store, notifier, "  ")
    assert exc_info.value.status_code == 400

    with pytest.raises(APIException) as exc_info:
        await auth_service.request_password_reset(store, notifier, "ghost@eventhub.io")
    assert exc_info.value.status_code == 404
    assert notifier.sent == []


async def test_reset_password_rejects_bad_tokens(store, make_user):
    user = await make_user()
    expired = await create_password_reset_token(user.id, expires_delta=timedelta(minutes=-1))
    access = await create_access_token(user.id, user.role.value)

    for token in (expired, access, "garbage"):
        with pytest.raises(APIException) as exc_info:
            await auth_service.reset_password(store, token, "N3wPassword")
        assert exc_info.value.status_code == 401
        assert exc_info.value.name == "invalid_or_expired_token"


async def test_reset_password_checks_strength_first(store):
    with pytest.raises(APIException) as exc_info:
        await auth_service.reset_password(store, "garbage", "weak")
    assert exc_info.value.status_code == 400


async def test_reset_password_for_missing_user(store):
    token = await create_password_reset_token(999)
    with pytest.raises(APIException) as exc_info:
        await auth_service.reset_password(store, token, "N3wPassword")
    assert exc_info.value.status_code == 404

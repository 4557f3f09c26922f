# tests/test_validators.py
from datetime import datetime, timedelta, timezone

import pytest

from eventhub.config import settings
from eventhub.infrastructure.database.models import UserRole
from eventhub.services.auth.auth_utils import (
    is_email, is_phone_number, is_strong_password, resolve_signup_role, is_token_expired
)


@pytest.mark.parametrize("value, expected", [
    ("ali@eventhub.io", True),
    ("first.last+tag@eventhub.io", True),
    ("not-an-email", False),
    ("ali@", False),
    ("", False),
    (None, False),
])
def test_is_email(value, expected):
    assert is_email(value) is expected


@pytest.mark.parametrize("value, expected", [
    ("03001234567", True),
    ("+923001234567", True),
    ("3001234567", False),
    ("0300123456", False),
    ("+9230012345678", False),
    ("+443001234567", False),
    ("", False),
])
def test_is_phone_number(value, expected):
    assert is_phone_number(value) is expected


@pytest.mark.parametrize("value, expected", [
    ("Passw0rd", True),
    ("abcdefg1", True),
    ("password", False),
    ("12345678", False),
    ("Pa55", False),
    (None, False),
])
def test_is_strong_password(value, expected):
    assert is_strong_password(value) is expected


def test_resolve_signup_role_defaults_to_participant():
    assert resolve_signup_role(None) == UserRole.PARTICIPANT
    assert resolve_signup_role("") == UserRole.PARTICIPANT
    assert resolve_signup_role("KING") == UserRole.PARTICIPANT
    assert resolve_signup_role("organizer") == UserRole.PARTICIPANT


def test_resolve_signup_role_honours_known_roles():
    assert resolve_signup_role("ORGANIZER") == UserRole.ORGANIZER
    assert resolve_signup_role("SUPER_ADMIN") == UserRole.SUPER_ADMIN


def test_resolve_signup_role_ignores_elevated_roles_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_SIGNUP_ROLE_SELECTION", False)
    assert resolve_signup_role("SUPER_ADMIN") == UserRole.PARTICIPANT
    assert resolve_signup_role("ORGANIZER") == UserRole.PARTICIPANT
    assert resolve_signup_role("PARTICIPANT") == UserRole.PARTICIPANT


def test_is_token_expired_handles_naive_and_aware_datetimes():
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    future = datetime.now(timezone.utc) + timedelta(minutes=1)
    assert is_token_expired(past)
    assert is_token_expired(past.replace(tzinfo=None))
    assert not is_token_expired(future)
    assert not is_token_expired(future.replace(tzinfo=None))
    assert is_token_expired(None)

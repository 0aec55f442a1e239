import pytest
from sqlalchemy import func, select

from promptchat.errors import IdentityCreationFailed
from promptchat.models import User
from promptchat.services import identity_service
from promptchat.services.identity_service import find_user_by_token, resolve_identity


def _user_count(db) -> int:
    return db.execute(select(func.count()).select_from(User)).scalar_one()


def test_missing_token_mints_new_visitor(db_session):
    identity = resolve_identity(db_session, None)

    assert identity.is_new is True
    assert len(identity.client_token) >= 43
    assert _user_count(db_session) == 1
    assert find_user_by_token(db_session, identity.client_token).id == identity.user_id


def test_known_token_resolves_to_same_user(db_session):
    first = resolve_identity(db_session, None)
    second = resolve_identity(db_session, first.client_token)

    assert second.is_new is False
    assert second.user_id == first.user_id
    assert second.client_token == first.client_token
    assert _user_count(db_session) == 1


def test_unknown_token_is_not_adopted(db_session):
    identity = resolve_identity(db_session, "forged-or-expired-token")

    assert identity.is_new is True
    assert identity.client_token != "forged-or-expired-token"
    assert find_user_by_token(db_session, "forged-or-expired-token") is None


def test_oversized_or_blank_token_is_treated_as_absent(db_session):
    assert find_user_by_token(db_session, "x" * 65) is None
    assert find_user_by_token(db_session, "   ") is None

    identity = resolve_identity(db_session, "   ")
    assert identity.is_new is True


def test_token_collision_raises_identity_creation_failed(db_session, monkeypatch):
    existing = resolve_identity(db_session, None)
    monkeypatch.setattr(
        identity_service, "generate_client_token", lambda: existing.client_token
    )

    with pytest.raises(IdentityCreationFailed) as exc_info:
        resolve_identity(db_session, None)

    assert exc_info.value.status_code == 500
    assert _user_count(db_session) == 1

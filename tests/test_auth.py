import copy

import pytest
from jose import jwt

from storefront.auth import AuthWorkflow, hash_password, verify_password
from storefront.config import settings
from storefront.errors import Conflict, InvalidInput, NotFound, Unauthorized
from storefront.models import Account, Role


def test_register_creates_active_user_with_hashed_password(db):
    account = AuthWorkflow(db).register("New@Example.com", "secret1", "New User")

    assert account.id is not None
    assert account.email == "new@example.com"
    assert account.role == Role.USER
    assert account.is_active is True
    assert account.password_hash != "secret1"
    assert verify_password("secret1", account.password_hash)


def test_register_duplicate_email_conflicts(db, user):
    with pytest.raises(Conflict):
        AuthWorkflow(db).register("user@example.com", "another1", "Someone Else")
    # case differences do not create a second account either
    with pytest.raises(Conflict):
        AuthWorkflow(db).register("USER@example.com", "another1", "Someone Else")
    assert db.query(Account).count() == 1


@pytest.mark.parametrize("password", ["", "a", "12345"])
def test_register_rejects_short_password(db, password):
    with pytest.raises(InvalidInput):
        AuthWorkflow(db).register("short@example.com", password, "Short")
    assert db.query(Account).count() == 0


@pytest.mark.parametrize("full_name", ["", "   ", None])
def test_register_rejects_blank_full_name(db, full_name):
    with pytest.raises(InvalidInput):
        AuthWorkflow(db).register("blank@example.com", "secret1", full_name)
    assert db.query(Account).count() == 0


def test_register_strips_full_name(db):
    assert AuthWorkflow(db).register("pad@example.com", "secret1", "  Padded  ").full_name == "Padded"


def test_register_accepts_six_character_password(db):
    account = AuthWorkflow(db).register("six@example.com", "123456", "Six")
    assert account.id is not None


def test_authenticate_success_issues_token(db, user):
    session = AuthWorkflow(db).authenticate("user@example.com", "secret1")

    assert session.account.id == user.id
    claims = jwt.decode(session.token, settings.jwt_secret, algorithms=["HS256"])
    assert claims["sub"] == str(user.id)
    assert claims["role"] == "USER"
    assert claims["email"] == "user@example.com"


def test_authenticate_wrong_password(db, user):
    with pytest.raises(Unauthorized):
        AuthWorkflow(db).authenticate("user@example.com", "wrong-password")


def test_authenticate_unknown_email(db):
    with pytest.raises(Unauthorized):
        AuthWorkflow(db).authenticate("nobody@example.com", "secret1")


def test_authenticate_deactivated_account_always_fails(db, user):
    auth = AuthWorkflow(db)
    auth.deactivate(user.id)

    with pytest.raises(Unauthorized):
        auth.authenticate("user@example.com", "secret1")
    with pytest.raises(Unauthorized):
        auth.authenticate("user@example.com", "wrong-password")

    auth.activate(user.id)
    assert auth.authenticate("user@example.com", "secret1").account.id == user.id


def test_validate_session_round_trip(db, user):
    auth = AuthWorkflow(db)
    token = auth.issue_token(user)
    assert auth.validate_session(token).id == user.id


def test_validate_session_rejects_tampered_token(db, user):
    auth = AuthWorkflow(db)
    token = auth.issue_token(user)
    forged = jwt.encode({"sub": str(user.id), "role": "ADMIN"}, "other-secret", algorithm="HS256")

    with pytest.raises(Unauthorized):
        auth.validate_session(token + "x")
    with pytest.raises(Unauthorized):
        auth.validate_session(forged)
    with pytest.raises(Unauthorized):
        auth.validate_session("not-a-jwt")


def test_validate_session_rejects_expired_token(db, user):
    expired_settings = copy.copy(settings)
    expired_settings.jwt_expiration_minutes = -5
    token = AuthWorkflow(db, expired_settings).issue_token(user)

    with pytest.raises(Unauthorized):
        AuthWorkflow(db).validate_session(token)


def test_validate_session_rejects_deactivated_account(db, user):
    auth = AuthWorkflow(db)
    token = auth.issue_token(user)
    auth.deactivate(user.id)

    with pytest.raises(Unauthorized):
        auth.validate_session(token)


def test_change_password(db, user):
    auth = AuthWorkflow(db)

    with pytest.raises(Unauthorized):
        auth.change_password(user.id, "wrong-old", "newsecret")

    auth.change_password(user.id, "secret1", "newsecret")
    assert auth.authenticate("user@example.com", "newsecret").account.id == user.id
    with pytest.raises(Unauthorized):
        auth.authenticate("user@example.com", "secret1")


def test_change_password_validates_new_password(db, user):
    with pytest.raises(InvalidInput):
        AuthWorkflow(db).change_password(user.id, "secret1", "123")


def test_update_profile(db, user):
    account = AuthWorkflow(db).update_profile(user.id, full_name="  Renamed  ", avatar_url="avatars/1.png")
    assert account.full_name == "Renamed"
    assert account.avatar_url == "avatars/1.png"

    with pytest.raises(InvalidInput):
        AuthWorkflow(db).update_profile(user.id, full_name="   ")


def test_get_account_missing(db):
    with pytest.raises(NotFound):
        AuthWorkflow(db).get_account(999)


def test_change_role_and_admin_queries(db, user, other_user):
    auth = AuthWorkflow(db)
    promoted = auth.change_role(other_user.id, Role.ADMIN)
    assert promoted.role == Role.ADMIN

    auth.deactivate(user.id)
    active = auth.list_active_accounts()
    assert [a.id for a in active] == [other_user.id]

    assert [a.id for a in auth.search_accounts("oTHer")] == [other_user.id]

    stats = auth.account_stats()
    assert stats["total_active_users"] == 1
    assert len(stats["recent_users"]) == 2


def test_hash_password_is_salted():
    first = hash_password("secret1", rounds=4)
    second = hash_password("secret1", rounds=4)
    assert first != second
    assert verify_password("secret1", first)
    assert not verify_password("secret2", first)
    assert not verify_password("secret1", "not-a-bcrypt-hash")

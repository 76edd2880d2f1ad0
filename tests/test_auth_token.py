from datetime import datetime, timedelta, timezone
import pytest
from darknova_core.auth import (
    INVALID_CREDENTIALS,
    JWTError,
    ExpiredSignatureError,
    SessionProvider,
    create_access_token,
    decode_token,
    hash_password,
    login_identifier,
    decode_token_raw,
    is_revoked,
    prune_revoked,
    revoke_token,
    verify_password,
)
from darknova_core.domain import Role
from darknova_core.repositories.local import KEY_SESSION


def test_token_round_trip():
    token = create_access_token({"sub": "tester@darknova.app"})
    payload = decode_token(token)
    assert payload["sub"] == "tester@darknova.app"
    assert payload["jti"]


def test_expired_token_rejected():
    token = create_access_token({"sub": "tester"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(ExpiredSignatureError):
        decode_token(token)


def test_revoked_token_rejected():
    token = create_access_token({"sub": "tester"})
    revoke_token(token)
    with pytest.raises(JWTError):
        decode_token(token)


def test_expired_revocations_are_pruned():
    token = create_access_token({"sub": "tester"}, expires_delta=timedelta(minutes=5))
    payload = decode_token_raw(token)
    revoke_token(token)
    assert is_revoked(payload)
    prune_revoked(now=datetime.now(timezone.utc) + timedelta(minutes=1))
    assert is_revoked(payload)
    assert prune_revoked(now=datetime.now(timezone.utc) + timedelta(minutes=10)) >= 1
    assert not is_revoked(payload)


def test_password_hash_verify():
    pw = "s3cret!"
    hashed = hash_password(pw)
    assert hashed != pw
    assert verify_password(pw, hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password(pw, "")


def test_login_identifier_is_case_insensitive():
    assert login_identifier(" Steve ") == login_identifier("steve") == "steve@darknova.app"
    assert login_identifier("Steve", domain="example.org") == "steve@example.org"


def test_error_message_is_localized():
    assert INVALID_CREDENTIALS == "Ungültiger Benutzername oder Passwort"


def test_sign_in_and_out(service, repos, farmer):
    sessions = SessionProvider(repos.users, store=repos.store)
    seen = []
    sessions.subscribe(seen.append)

    assert sessions.sign_in("Steve", "wrong") is None
    token = sessions.sign_in("steve", "steve-pass")
    assert token
    assert sessions.current_identity().id == farmer.id
    assert sessions.current_identity(token).id == farmer.id

    sessions.sign_out()
    assert sessions.current_identity() is None
    assert sessions.current_identity(token) is None
    assert [(e.table, e.action, e.record_id) for e in seen] == [
        ("auth", "signed_in", farmer.id),
        ("auth", "signed_out", farmer.id),
    ]


def test_sign_out_foreign_token_keeps_own_session(service, repos, admin, farmer):
    mine = SessionProvider(repos.users)
    mine.sign_in("admin", "admin-pass")
    other = SessionProvider(repos.users).sign_in("Steve", "steve-pass")
    mine.sign_out(other)
    assert mine.current_identity().role == Role.ADMIN
    assert mine.current_identity(other) is None


def test_local_session_slot_persists(service, repos, farmer):
    if repos.store is None:
        pytest.skip("session slot exists only for the local adapter")
    SessionProvider(repos.users, store=repos.store).sign_in("Steve", "steve-pass")
    assert repos.store.read(KEY_SESSION)["username"] == "Steve"
    restored = SessionProvider(repos.users, store=repos.store)
    assert restored.current_identity().id == farmer.id
    restored.sign_out()
    assert repos.store.read(KEY_SESSION) is None


def test_shared_provider_keeps_no_current_user(service, repos, admin, farmer):
    sessions = SessionProvider(repos.users, store=repos.store, track_current=False)
    token = sessions.sign_in("Steve", "steve-pass")
    sessions.sign_in("admin", "admin-pass")
    assert sessions.current_identity() is None
    assert sessions.current_identity(token).id == farmer.id
    if repos.store is not None:
        assert repos.store.read(KEY_SESSION) is None
    sessions.sign_out(token)
    assert sessions.current_identity(token) is None

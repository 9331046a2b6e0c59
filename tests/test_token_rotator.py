import threading
from datetime import timedelta

from sqlalchemy import text

from services.errors import SessionNotFound, StaleOldToken, StorageError, TokenReuseDetected
from services.session_service import SessionService
from utils.result import fail
from utils.security import hash_secret

from conftest import add_user


def test_rotation_flips_old_token_and_stores_new_one(service, user_id, clock, fetch_session, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    clock.advance(minutes=10)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert outcome.success
    assert outcome.source == "TOKEN_ROTATION"
    row = fetch_session(number)
    assert outcome.result == row.session_id
    assert row.last_used_at == clock.now

    old, new = fetch_tokens(row.session_id)
    assert old.token_hash == hash_secret("tok-A") and old.is_used is True
    assert new.token_hash == hash_secret("tok-B") and new.is_used is False
    assert new.created_at == clock.now


def test_rotation_chain_keeps_exactly_one_unused_token(service, user_id, fetch_session, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result

    for old, new in (("tok-A", "tok-B"), ("tok-B", "tok-C"), ("tok-C", "tok-D")):
        assert service.rotate_token(number, old, new).success

    tokens = fetch_tokens(fetch_session(number).session_id)
    assert len(tokens) == 4
    assert [t.is_used for t in tokens] == [True, True, True, False]


def test_new_token_inherits_expiry_of_persistent_session(service, user_id, clock, fetch_session, fetch_tokens):
    expires_at = clock.now + timedelta(days=30)
    number = service.start_session(user_id, "tok-A", expires_at=expires_at).result
    clock.advance(days=1)

    assert service.rotate_token(number, "tok-A", "tok-B").success

    assert [t.expires_at for t in fetch_tokens()] == [expires_at, expires_at]


def test_replaying_a_used_token_is_reuse(service, user_id, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    assert service.rotate_token(number, "tok-A", "tok-B").success

    outcome = service.rotate_token(number, "tok-A", "tok-C")

    assert not outcome.success
    assert isinstance(outcome.error, TokenReuseDetected)
    assert hash_secret("tok-C") not in {t.token_hash for t in fetch_tokens()}


def test_new_token_already_used_is_reuse(service, user_id, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    assert service.rotate_token(number, "tok-A", "tok-B").success
    assert service.rotate_token(number, "tok-B", "tok-C").success

    outcome = service.rotate_token(number, "tok-C", "tok-A")

    assert isinstance(outcome.error, TokenReuseDetected)
    # rolled back: tok-C is still the live token
    assert [t.is_used for t in fetch_tokens()] == [True, True, False]


def test_new_token_equal_to_a_live_token_fails_on_unique_hash(service, make_user, user_id, fetch_tokens):
    other = make_user("reader02")
    number = service.start_session(user_id, "tok-A").result
    assert service.start_session(other, "tok-X").success

    outcome = service.rotate_token(number, "tok-A", "tok-X")

    assert isinstance(outcome.error, StorageError)
    assert [t.is_used for t in fetch_tokens()] == [False, False]


def test_unknown_old_token_rolls_back_last_used(service, user_id, clock, fetch_session, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    clock.advance(minutes=30)

    outcome = service.rotate_token(number, "tok-Z", "tok-B")

    assert isinstance(outcome.error, StaleOldToken)
    row = fetch_session(number)
    assert row.last_used_at == clock.now - timedelta(minutes=30)
    assert len(fetch_tokens()) == 1


def test_token_of_another_session_is_stale(service, user_id):
    first = service.start_session(user_id, "tok-A").result
    service.start_session(user_id, "tok-B")

    outcome = service.rotate_token(first, "tok-B", "tok-C")

    assert isinstance(outcome.error, StaleOldToken)


def test_expired_old_token_is_stale(service, storage, user_id, clock, fetch_tokens):
    number = service.start_session(user_id, "tok-A", expires_at=clock.now + timedelta(days=30)).result
    # expire the token alone; the session itself is still valid
    token = fetch_tokens()[0]
    token.expires_at = clock.now + timedelta(minutes=5)
    storage.get_session().commit()
    clock.advance(minutes=10)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert isinstance(outcome.error, StaleOldToken)
    assert fetch_tokens()[0].is_used is False


def test_unknown_session_number(service, user_id):
    service.start_session(user_id, "tok-A")

    outcome = service.rotate_token("no-such-session", "tok-A", "tok-B")

    assert not outcome.success
    assert isinstance(outcome.error, SessionNotFound)


def test_idle_session_is_not_found_before_the_sweep(service, user_id, clock, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    clock.advance(hours=25)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert isinstance(outcome.error, SessionNotFound)
    assert fetch_tokens()[0].is_used is False


def test_expired_persistent_session_is_not_found(service, user_id, clock):
    number = service.start_session(user_id, "tok-A", expires_at=clock.now + timedelta(days=30)).result
    clock.advance(days=30)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert isinstance(outcome.error, SessionNotFound)


def test_active_session_survives_past_the_idle_threshold(service, user_id, clock):
    number = service.start_session(user_id, "tok-A").result

    clock.advance(hours=20)
    assert service.rotate_token(number, "tok-A", "tok-B").success
    clock.advance(hours=20)
    assert service.rotate_token(number, "tok-B", "tok-C").success


def test_invalidate_miss_is_reuse_and_rolls_back(service, user_id, clock, monkeypatch, fetch_session, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    clock.advance(minutes=10)
    invalidate = service.tokens.invalidate

    def _lose_the_race(db, token):
        # another writer flips the token between our read and our update
        db.execute(text("UPDATE session_tokens SET is_used = 1 WHERE token_id = :tid"), {"tid": token.token_id})
        return invalidate(db, token)

    monkeypatch.setattr(service.tokens, "invalidate", _lose_the_race)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert isinstance(outcome.error, TokenReuseDetected)
    assert fetch_session(number).last_used_at == clock.now - timedelta(minutes=10)
    tokens = fetch_tokens()
    assert [t.token_hash for t in tokens] == [hash_secret("tok-A")]
    assert tokens[0].is_used is False


def test_concurrent_rotations_of_one_token(file_storage):
    user_id = add_user(file_storage)
    service = SessionService(file_storage)

    for round_number in range(5):
        old = f"tok-{round_number}"
        number = service.start_session(user_id, old).result
        file_storage.close()
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def _rotate(new):
            barrier.wait()
            try:
                outcome = service.rotate_token(number, old, new)
            finally:
                file_storage.close()
            with lock:
                outcomes.append("OK" if outcome.success else type(outcome.error).__name__)

        threads = [
            threading.Thread(target=_rotate, args=(f"{old}-{side}",)) for side in ("left", "right")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["OK", "TokenReuseDetected"]


def test_token_lookup_failure_is_passed_through(service, user_id, monkeypatch):
    number = service.start_session(user_id, "tok-A").result
    get_tokens = service.tokens.get_tokens
    broken = StorageError("lookup failed")

    def _fail_on_new_token(db, token_hash):
        if token_hash == hash_secret("tok-B"):
            return fail(broken)
        return get_tokens(db, token_hash)

    monkeypatch.setattr(service.tokens, "get_tokens", _fail_on_new_token)

    outcome = service.rotate_token(number, "tok-A", "tok-B")

    assert outcome.error is broken

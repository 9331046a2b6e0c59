import logging
from datetime import timedelta

from sqlalchemy import text

from services.errors import CleanupFailed


def test_end_session_removes_session_and_its_tokens(service, user_id, fetch_session, fetch_tokens):
    number = service.start_session(user_id, "tok-A").result
    other = service.start_session(user_id, "tok-X").result
    service.rotate_token(number, "tok-A", "tok-B")
    session_id = fetch_session(number).session_id

    outcome = service.end_session(number)

    assert outcome.success
    assert outcome.source == "SESSION_END"
    assert outcome.result == session_id
    assert fetch_session(number) is None
    assert fetch_tokens(session_id) == []
    assert fetch_session(other) is not None
    assert len(fetch_tokens()) == 1


def test_end_session_twice_is_a_no_op(service, user_id):
    number = service.start_session(user_id, "tok-A").result
    assert service.end_session(number).success

    outcome = service.end_session(number)

    assert outcome.success
    assert outcome.result is None


def test_end_user_sessions_only_touches_that_user(service, make_user, user_id, fetch_tokens):
    other = make_user("reader02")
    mine = [service.start_session(user_id, f"tok-{i}").result for i in range(3)]
    theirs = service.start_session(other, "tok-theirs").result

    outcome = service.end_user_sessions(user_id)

    assert outcome.success
    assert len(outcome.result) == 3
    assert len(fetch_tokens()) == 1
    assert service.rotate_token(theirs, "tok-theirs", "tok-next").success
    assert all(not service.rotate_token(n, "tok-0", "tok-new").success for n in mine)


def test_sweep_idle_uses_the_threshold(service, user_id, clock, fetch_session):
    stale = service.start_session(user_id, "tok-stale").result
    clock.advance(hours=2)
    fresh = service.start_session(user_id, "tok-fresh").result
    clock.advance(hours=23)
    # stale: idle 25h, fresh: idle 23h

    outcome = service.sweep_idle()

    assert outcome.success
    assert len(outcome.result) == 1
    assert fetch_session(stale) is None
    assert fetch_session(fresh) is not None


def test_sweep_idle_leaves_persistent_sessions(service, user_id, clock, fetch_session):
    number = service.start_session(user_id, "tok-A", expires_at=clock.now + timedelta(days=30)).result
    clock.advance(days=3)

    assert service.sweep_idle().result == []
    assert fetch_session(number) is not None


def test_sweep_expired_removes_only_lapsed_persistent_sessions(service, user_id, clock, fetch_session, fetch_tokens):
    expired = service.start_session(user_id, "tok-old", expires_at=clock.now - timedelta(seconds=1)).result
    live = service.start_session(user_id, "tok-live", expires_at=clock.now + timedelta(hours=1)).result
    short = service.start_session(user_id, "tok-short").result

    outcome = service.sweep_expired()

    assert outcome.success
    assert len(outcome.result) == 1
    assert fetch_session(expired) is None
    assert fetch_session(live) is not None
    assert fetch_session(short) is not None
    assert len(fetch_tokens()) == 2


def test_sweeps_are_idempotent(service, user_id, clock):
    service.start_session(user_id, "tok-A")
    service.start_session(user_id, "tok-B", expires_at=clock.now + timedelta(hours=1))
    clock.advance(hours=30)

    assert len(service.sweep_idle().result) == 1
    assert len(service.sweep_expired().result) == 1
    assert service.sweep_idle().result == []
    assert service.sweep_expired().result == []


def test_sweep_on_empty_database(service):
    assert service.sweep_idle().result == []
    assert service.sweep_expired().result == []


def test_storage_failure_is_reported_as_cleanup_failed(service, storage, user_id):
    service.start_session(user_id, "tok-A")
    db = storage.get_session()
    db.execute(text("DROP TABLE session_tokens"))
    db.commit()

    outcome = service.end_user_sessions(user_id)

    assert not outcome.success
    assert isinstance(outcome.error, CleanupFailed)
    assert outcome.error.cause is not None


def test_end_session_failure_is_logged(service, storage, user_id, caplog):
    number = service.start_session(user_id, "tok-A").result
    db = storage.get_session()
    db.execute(text("DROP TABLE session_tokens"))
    db.commit()

    with caplog.at_level(logging.ERROR, logger="services.session_cleaner"):
        outcome = service.end_session(number)

    assert isinstance(outcome.error, CleanupFailed)
    assert "Failed deleting session." in caplog.text
    assert "DB_ACCESS_ERROR" in caplog.text

"""Tests for SessionManager: token lifecycle, expiry and hashed storage."""

from datetime import timedelta

import pytest

from tidegate.core.deadline import Deadline
from tidegate.core.tokens import ACCESS_TOKEN_PREFIX, REFRESH_TOKEN_PREFIX
from tidegate.exceptions import SessionNotFoundError, TransientStorageError, ValidationError
from tidegate.models import UserSession
from tidegate.schemas.pagination import PaginationParams
from tidegate.schemas.session import SessionFilters
from tidegate.services import SessionManager


@pytest.fixture()
def sessions(db, clock):
    return SessionManager(db, clock=clock)


class TestCreateAndValidate:

    def test_round_trip(self, sessions):
        issued = sessions.create("u1", "10.0.0.1", "pytest")
        assert issued.token.startswith(ACCESS_TOKEN_PREFIX)
        assert issued.refresh_token.startswith(REFRESH_TOKEN_PREFIX)
        assert sessions.validate_token(issued.token).id == issued.session.id
        assert sessions.validate_refresh_token(issued.refresh_token).id == issued.session.id

    def test_plaintext_never_stored(self, db, sessions):
        issued = sessions.create("u1")
        row = db.query(UserSession).filter(UserSession.id == issued.session.id).one()
        stored = {row.token_hash, row.refresh_token_hash}
        assert issued.token not in stored
        assert issued.refresh_token not in stored
        assert row.token_hash == sessions.hash(issued.token)

    def test_tokens_are_unique(self, sessions):
        first = sessions.create("u1")
        second = sessions.create("u1")
        assert first.token != second.token
        assert first.refresh_token != second.refresh_token

    def test_access_token_is_not_a_refresh_token(self, sessions):
        issued = sessions.create("u1")
        with pytest.raises(SessionNotFoundError):
            sessions.validate_refresh_token(issued.token)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(issued.refresh_token)

    def test_unknown_and_empty_tokens(self, sessions):
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token("tga_unknown")
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token("")

    def test_non_positive_ttl_rejected(self, sessions):
        with pytest.raises(ValidationError):
            sessions.create("u1", ttl=timedelta(0))

    def test_other_secret_cannot_validate(self, db, sessions):
        issued = sessions.create("u1")
        with pytest.raises(SessionNotFoundError):
            SessionManager(db, secret="another-secret").validate_token(issued.token)

    def test_authenticate_returns_principal_and_touches(self, db, sessions, clock):
        issued = sessions.create("u1")
        clock.advance(minutes=3)
        principal = sessions.authenticate(issued.token)
        assert principal.user_id == "u1"
        assert principal.session_id == issued.session.id
        db.expire_all()
        row = db.query(UserSession).filter(UserSession.id == issued.session.id).one()
        assert row.last_used_at.replace(tzinfo=None) == clock.now.replace(tzinfo=None)


class TestExpiry:

    def test_expired_session_looks_revoked(self, sessions, clock):
        issued = sessions.create("u1", ttl=timedelta(hours=1))
        assert sessions.validate_token(issued.token)
        clock.advance(hours=1, seconds=1)
        with pytest.raises(SessionNotFoundError) as exc:
            sessions.validate_token(issued.token)
        with pytest.raises(SessionNotFoundError) as revoked:
            sessions.validate_token("tga_never-issued")
        assert exc.value.message == revoked.value.message
        with pytest.raises(SessionNotFoundError):
            sessions.validate_refresh_token(issued.refresh_token)

    def test_expiry_instant_is_already_expired(self, sessions, clock):
        issued = sessions.create("u1", ttl=timedelta(minutes=5))
        clock.advance(minutes=5)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(issued.token)

    def test_delete_expired_removes_exactly_expired(self, db, sessions, clock):
        short = sessions.create("u1", ttl=timedelta(minutes=1))
        boundary = sessions.create("u2", ttl=timedelta(minutes=2))
        live = sessions.create("u3", ttl=timedelta(hours=1))
        # Capture ids now: the deleted rows cannot be reloaded after commit.
        short_id, boundary_id, live_id = short.session.id, boundary.session.id, live.session.id
        clock.advance(minutes=2)
        assert sessions.delete_expired() == 2
        remaining = {s.id for s in db.query(UserSession).all()}
        assert remaining == {live_id}
        assert short_id not in remaining
        assert boundary_id not in remaining


class TestRevocation:

    def test_delete_invalidates_both_tokens(self, sessions):
        issued = sessions.create("u1")
        sessions.delete(issued.session.id)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(issued.token)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_refresh_token(issued.refresh_token)

    def test_delete_missing(self, sessions):
        with pytest.raises(SessionNotFoundError):
            sessions.delete("missing")

    def test_revoke_access_keeps_refresh(self, sessions):
        issued = sessions.create("u1")
        sessions.revoke_access_token(issued.session.id)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(issued.token)
        assert sessions.validate_refresh_token(issued.refresh_token).id == issued.session.id

    def test_revoke_refresh_keeps_access(self, sessions):
        issued = sessions.create("u1")
        sessions.revoke_refresh_token(issued.session.id)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_refresh_token(issued.refresh_token)
        assert sessions.validate_token(issued.token).id == issued.session.id

    def test_delete_by_user_id(self, sessions):
        a = sessions.create("u1")
        sessions.create("u1")
        other = sessions.create("u2")
        assert sessions.delete_by_user_id("u1") == 2
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(a.token)
        assert sessions.validate_token(other.token)


class TestRefresh:

    def test_refresh_replaces_access_token(self, sessions):
        issued = sessions.create("u1", ttl=timedelta(hours=1))
        refreshed = sessions.refresh_access_token(issued.refresh_token)
        assert refreshed.token != issued.token
        assert refreshed.refresh_token == issued.refresh_token
        assert refreshed.session.id == issued.session.id
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(issued.token)
        assert sessions.validate_token(refreshed.token).id == issued.session.id

    def test_refresh_does_not_extend_expiry(self, sessions, clock):
        issued = sessions.create("u1", ttl=timedelta(hours=1))
        clock.advance(minutes=30)
        refreshed = sessions.refresh_access_token(issued.refresh_token)
        clock.advance(minutes=31)
        with pytest.raises(SessionNotFoundError):
            sessions.validate_token(refreshed.token)

    def test_refresh_with_revoked_refresh_token(self, sessions):
        issued = sessions.create("u1")
        sessions.revoke_refresh_token(issued.session.id)
        with pytest.raises(SessionNotFoundError):
            sessions.refresh_access_token(issued.refresh_token)


class TestBestEffortAndListing:

    def test_update_last_used_never_raises(self, sessions, monkeypatch):
        issued = sessions.create("u1")

        def broken_touch(*args, **kwargs):
            raise TransientStorageError("touch failed")

        monkeypatch.setattr(sessions.repo, "touch", broken_touch)
        sessions.update_last_used(issued.session.id)
        assert sessions.authenticate(issued.token).user_id == "u1"

    def test_update_last_used_respects_deadline(self, db, sessions, clock):
        issued = sessions.create("u1")
        session_id = issued.session.id
        db.expire_all()
        created = db.get(UserSession, session_id).last_used_at
        clock.advance(minutes=5)
        deadline = Deadline()
        deadline.cancel()
        sessions.update_last_used(session_id, deadline)
        db.expire_all()
        assert db.get(UserSession, session_id).last_used_at == created

    def test_list_sessions(self, sessions, clock):
        sessions.create("u1", ip_address="10.0.0.1", ttl=timedelta(minutes=1))
        sessions.create("u1", ip_address="10.0.0.2")
        sessions.create("u2")
        clock.advance(minutes=2)

        page = sessions.list_sessions(SessionFilters(user_id="u1"))
        assert page.total == 2
        active = sessions.list_sessions(SessionFilters(user_id="u1", active=True))
        assert [s.ip_address for s in active.items] == ["10.0.0.2"]
        expired = sessions.list_sessions(SessionFilters(active=False))
        assert expired.total == 1
        first = sessions.list_sessions(pagination=PaginationParams(page=1, page_size=2))
        assert len(first.items) == 2 and first.has_next

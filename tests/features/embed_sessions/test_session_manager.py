import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
from jwt.utils import base64url_decode, base64url_encode
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from app.features.embed_sessions.exceptions import (
    InvalidSignature,
    IssuanceFailed,
    MalformedToken,
    PersistenceUnavailable,
    SessionExpired,
    SessionNotFound,
    TokenExpired,
    UnsupportedAlgorithm,
)
from app.features.embed_sessions.models.embed_session import EmbedSession
from app.features.embed_sessions.services.session_manager import (
    SessionLifecycleManager,
    hash_token,
)
from app.features.embed_sessions.utils import signature, token_codec
from app.platform.db.session import create_session_factory


def _replace_payload(token: str, **changes) -> str:
    header, payload, sig = token.split(".")
    claims = json.loads(base64url_decode(payload))
    claims.update(changes)
    new_payload = base64url_encode(json.dumps(claims, separators=(",", ":")).encode()).decode()
    return f"{header}.{new_payload}.{sig}"


async def _issue_lead_one(manager, **kwargs):
    options = dict(scope={"accountId": "acct-1"}, ttl_minutes=45, key_version="v1")
    options.update(kwargs)
    return await manager.issue("lead-1", "lead1@example.com", **options)


class TestIssue:
    @pytest.mark.asyncio
    async def test_issue_returns_compact_token(self, manager):
        issued = await _issue_lead_one(manager)

        assert issued.token.count(".") == 2
        assert issued.key_version == "v1"
        assert issued.session_id
        assert issued.expires_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_issue_embeds_claims(self, manager):
        before = int(datetime.now(timezone.utc).timestamp())
        issued = await _issue_lead_one(manager)

        payload = token_codec.decode(issued.token).payload
        assert payload["aud"] == "embed-session"
        assert payload["iss"] == "prompt-reviews"
        assert payload["sub"] == "lead-1"
        assert payload["email"] == "lead1@example.com"
        assert payload["scope"] == {"accountId": "acct-1"}
        assert payload["ver"] == "v1"
        assert payload["iat"] >= before
        assert payload["exp"] == payload["iat"] + 45 * 60
        assert payload["exp"] == int(issued.expires_at.timestamp())

    @pytest.mark.asyncio
    async def test_subject_falls_back_to_email(self, manager):
        issued = await manager.issue(None, "anon@example.com", ttl_minutes=5)

        assert token_codec.decode(issued.token).payload["sub"] == "anon@example.com"
        info = await manager.validate(issued.token)
        assert info.lead_id is None

    @pytest.mark.asyncio
    async def test_defaults_come_from_config(self, manager, signing_config):
        issued = await manager.issue("lead-1", "lead1@example.com")

        payload = token_codec.decode(issued.token).payload
        assert payload["ver"] == signing_config.key_version
        assert payload["exp"] - payload["iat"] == signing_config.ttl_minutes * 60
        assert payload["scope"] == {}

    @pytest.mark.asyncio
    async def test_same_second_issuances_get_distinct_tokens(self, store, signing_config):
        now = datetime.now(timezone.utc)
        manager = SessionLifecycleManager(store, signing_config, clock=lambda: now)

        first = await _issue_lead_one(manager)
        second = await _issue_lead_one(manager)

        assert first.token != second.token
        assert first.session_id != second.session_id

    @pytest.mark.asyncio
    async def test_token_is_a_standard_hs256_jwt(self, manager, signing_config):
        issued = await _issue_lead_one(manager)

        claims = jwt.decode(
            issued.token,
            signing_config.secret,
            algorithms=["HS256"],
            audience="embed-session",
            issuer="prompt-reviews",
        )
        assert claims["sub"] == "lead-1"

    @pytest.mark.asyncio
    async def test_record_is_keyed_by_hash_of_whole_token(self, manager, engine):
        issued = await _issue_lead_one(manager)

        async with create_session_factory(engine)() as db:
            record = (await db.execute(select(EmbedSession))).scalar_one()

        assert record.id == issued.session_id
        assert record.token_hash == hash_token(issued.token)
        assert len(record.token_hash) == 64
        assert record.scope == {"accountId": "acct-1"}
        assert record.key_version == "v1"
        assert record.email == "lead1@example.com"
        assert record.lead_id == "lead-1"
        assert record.expires_at == issued.expires_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_issue_fails_without_token_when_store_fails(self, signing_config):
        store = AsyncMock()
        store.insert_session.side_effect = PersistenceUnavailable("down")
        manager = SessionLifecycleManager(store, signing_config)

        with pytest.raises(IssuanceFailed) as exc:
            await manager.issue("lead-1", "lead1@example.com", ttl_minutes=45)

        assert isinstance(exc.value.__cause__, PersistenceUnavailable)


class TestValidate:
    @pytest.mark.asyncio
    async def test_round_trip(self, manager):
        issued = await _issue_lead_one(manager)

        info = await manager.validate(issued.token)

        assert info.session_id == issued.session_id
        assert info.lead_id == "lead-1"
        assert info.email == "lead1@example.com"
        assert info.payload["scope"]["accountId"] == "acct-1"
        assert info.scope == {"accountId": "acct-1"}

    @pytest.mark.asyncio
    async def test_validate_is_repeatable(self, manager):
        issued = await _issue_lead_one(manager)

        for _ in range(3):
            assert (await manager.validate(issued.token)).lead_id == "lead-1"

    @pytest.mark.asyncio
    async def test_every_payload_character_flip_fails_signature(self, manager):
        issued = await _issue_lead_one(manager)
        header, payload, sig = issued.token.split(".")

        for index, char in enumerate(payload):
            flipped = "B" if char == "A" else "A"
            tampered = f"{header}.{payload[:index]}{flipped}{payload[index + 1:]}.{sig}"

            with pytest.raises(InvalidSignature):
                await manager.validate(tampered)

    @pytest.mark.asyncio
    async def test_tampered_claims_fail_signature(self, manager):
        issued = await _issue_lead_one(manager)

        with pytest.raises(InvalidSignature):
            await manager.validate(_replace_payload(issued.token, email="lead2@example.com"))

    @pytest.mark.asyncio
    async def test_unparseable_payload_fails_signature(self, manager):
        issued = await _issue_lead_one(manager)
        header, _, sig = issued.token.split(".")
        garbage = base64url_encode(b"[" * 5000).decode()

        with pytest.raises(InvalidSignature):
            await manager.validate(f"{header}.{garbage}.{sig}")

    @pytest.mark.asyncio
    async def test_signed_non_json_payload_is_malformed(self, manager, signing_config):
        header = base64url_encode(b'{"alg":"HS256","typ":"JWT"}').decode()
        payload = base64url_encode(b"not json").decode()
        signing_input = f"{header}.{payload}"
        token = f"{signing_input}.{signature.sign(signing_input, signing_config.secret)}"

        with pytest.raises(MalformedToken):
            await manager.validate(token)

    @pytest.mark.asyncio
    async def test_deeply_nested_header_is_malformed(self, manager):
        header = base64url_encode(b"[" * 200000).decode()
        payload = base64url_encode(b'{"sub":"x"}').decode()

        with pytest.raises(MalformedToken):
            await manager.validate(f"{header}.{payload}.c2ln")

    @pytest.mark.asyncio
    async def test_tampered_scope_fails_signature(self, manager):
        issued = await _issue_lead_one(manager)

        with pytest.raises(InvalidSignature):
            await manager.validate(_replace_payload(issued.token, scope={"accountId": "acct-2"}))

    @pytest.mark.asyncio
    async def test_tampered_signature_fails(self, manager):
        issued = await _issue_lead_one(manager)
        header, payload, sig = issued.token.split(".")
        flipped = ("B" if sig[5] == "A" else "A")
        tampered = f"{header}.{payload}.{sig[:5]}{flipped}{sig[6:]}"

        with pytest.raises(InvalidSignature):
            await manager.validate(tampered)

    @pytest.mark.asyncio
    async def test_token_signed_with_other_secret_fails(self, manager, signing_config):
        encoded = token_codec.encode({"sub": "lead-1", "exp": 4102444800})
        forged = f"{encoded.signing_input}.{signature.sign(encoded.signing_input, b'not-the-secret-0123456789abcdef01')}"

        with pytest.raises(InvalidSignature):
            await manager.validate(forged)

    @pytest.mark.asyncio
    async def test_unsupported_algorithm(self, manager):
        issued = await _issue_lead_one(manager)
        _, payload, sig = issued.token.split(".")
        header = base64url_encode(b'{"alg":"none","typ":"JWT"}').decode()

        with pytest.raises(UnsupportedAlgorithm):
            await manager.validate(f"{header}.{payload}.{sig}")

    @pytest.mark.asyncio
    async def test_negative_ttl_is_expired(self, manager):
        issued = await _issue_lead_one(manager, ttl_minutes=-1)

        with pytest.raises(TokenExpired):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    async def test_clock_past_exp_is_expired(self, store, signing_config):
        now = datetime.now(timezone.utc)
        issuer = SessionLifecycleManager(store, signing_config, clock=lambda: now)
        issued = await issuer.issue("lead-1", "lead1@example.com", ttl_minutes=45)

        later = SessionLifecycleManager(store, signing_config, clock=lambda: now + timedelta(minutes=46))
        with pytest.raises(TokenExpired):
            await later.validate(issued.token)

    @pytest.mark.asyncio
    async def test_missing_exp_is_malformed(self, manager, signing_config):
        encoded = token_codec.encode({"sub": "lead-1", "exp": "tomorrow"})
        token = f"{encoded.signing_input}.{signature.sign(encoded.signing_input, signing_config.secret)}"

        with pytest.raises(MalformedToken):
            await manager.validate(token)

    @pytest.mark.asyncio
    async def test_deleted_record_is_not_found(self, manager, engine, signing_config):
        issued = await _issue_lead_one(manager)

        async with create_session_factory(engine)() as db:
            record = await db.get(EmbedSession, issued.session_id)
            await db.delete(record)
            await db.commit()

        # Signature and exp still check out on their own
        claims = jwt.decode(issued.token, signing_config.secret, algorithms=["HS256"], audience="embed-session")
        assert claims["sub"] == "lead-1"

        with pytest.raises(SessionNotFound):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    async def test_revoke_removes_session(self, manager):
        issued = await _issue_lead_one(manager)

        assert await manager.revoke(issued.session_id) is True
        assert await manager.revoke(issued.session_id) is False

        with pytest.raises(SessionNotFound):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    async def test_shortened_server_expiry(self, manager, engine):
        issued = await _issue_lead_one(manager)

        async with create_session_factory(engine)() as db:
            await db.execute(
                update(EmbedSession)
                .where(EmbedSession.id == issued.session_id)
                .values(expires_at=datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1))
            )
            await db.commit()

        with pytest.raises(SessionExpired):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["not-a-token", "", "a.b.c", "...."])
    async def test_malformed_input(self, manager, token):
        with pytest.raises(MalformedToken):
            await manager.validate(token)

    @pytest.mark.asyncio
    async def test_datastore_outage_is_not_a_validation_failure(self, signing_config):
        store = AsyncMock()
        store.insert_session.return_value = "session-1"
        store.find_session_by_hash.side_effect = PersistenceUnavailable("timeout")
        manager = SessionLifecycleManager(store, signing_config)
        issued = await manager.issue("lead-1", "lead1@example.com", ttl_minutes=45)

        with pytest.raises(PersistenceUnavailable):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OperationalError, InterfaceError])
    async def test_driver_errors_become_persistence_unavailable(self, store, manager, monkeypatch, error):
        issued = await _issue_lead_one(manager)

        def broken_factory():
            raise error("SELECT 1", {}, ConnectionRefusedError("refused"))

        monkeypatch.setattr(store, "_session_factory", broken_factory)

        with pytest.raises(PersistenceUnavailable):
            await manager.validate(issued.token)

    @pytest.mark.asyncio
    async def test_constraint_violation_is_not_an_outage(self, store):
        expires_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=5)

        def record():
            return EmbedSession(token_hash="a" * 64, scope={}, key_version="v1", email="a@x.com", expires_at=expires_at)

        await store.insert_session(record())
        with pytest.raises(IntegrityError):
            await store.insert_session(record())


class TestVersionInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_by_version(self, manager):
        first = await _issue_lead_one(manager, key_version="v1")
        second = await manager.issue("lead-2", "lead2@example.com", ttl_minutes=45, key_version="v1")

        assert await manager.invalidate_by_version("v1") == 2

        for token in (first.token, second.token):
            with pytest.raises(SessionExpired):
                await manager.validate(token)

        third = await manager.issue("lead-3", "lead3@example.com", ttl_minutes=45, key_version="v2")
        assert (await manager.validate(third.token)).lead_id == "lead-3"

    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, manager):
        await _issue_lead_one(manager, key_version="v1")

        assert await manager.invalidate_by_version("v1") == 1
        assert await manager.invalidate_by_version("v1") == 0

    @pytest.mark.asyncio
    async def test_invalidate_leaves_other_versions(self, manager):
        kept = await _issue_lead_one(manager, key_version="v2")

        assert await manager.invalidate_by_version("v1") == 0
        assert (await manager.validate(kept.token)).session_id == kept.session_id


class TestPurge:
    @pytest.mark.asyncio
    async def test_purge_removes_only_expired(self, store, signing_config):
        now = datetime.now(timezone.utc)
        manager = SessionLifecycleManager(store, signing_config, clock=lambda: now)
        expired = await manager.issue("lead-1", "lead1@example.com", ttl_minutes=-5)
        live = await manager.issue("lead-2", "lead2@example.com", ttl_minutes=45)

        assert await manager.purge_expired() == 1
        assert await manager.purge_expired() == 0

        assert await store.find_session_by_hash(hash_token(expired.token)) is None
        assert (await manager.validate(live.token)).lead_id == "lead-2"

    @pytest.mark.asyncio
    async def test_purge_after_version_invalidation_revokes(self, store, signing_config):
        now = datetime.now(timezone.utc)
        issuer = SessionLifecycleManager(store, signing_config, clock=lambda: now)
        issued = await issuer.issue("lead-1", "lead1@example.com", ttl_minutes=45, key_version="v1")
        assert await issuer.invalidate_by_version("v1") == 1

        later = SessionLifecycleManager(store, signing_config, clock=lambda: now + timedelta(seconds=1))
        assert await later.purge_expired() == 1

        with pytest.raises(SessionNotFound):
            await later.validate(issued.token)

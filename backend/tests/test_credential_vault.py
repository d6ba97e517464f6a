"""
Tests for CredentialVault and the AES-GCM secret cipher.
"""

import base64
from uuid import uuid4

import pytest
from sqlalchemy import select

from compliance_intake.core.database.models import PlatformCredential
from compliance_intake.core.errors import ValidationError, VaultKeyError
from compliance_intake.core.models.enums import CredentialState, Platform
from compliance_intake.core.vault.crypto import PREFIX, SecretCipher, is_encrypted, parse_master_key


class TestSecretCipher:
    """Encryption is bound to tenant, platform, alias and field."""

    def test_round_trip(self, cipher):
        tenant = uuid4()
        token = cipher.encrypt("s3cret", tenant, "nalanda", "nalanda-default", "password")

        assert token.startswith(PREFIX)
        assert "s3cret" not in token
        assert cipher.decrypt(token, tenant, "nalanda", "nalanda-default", "password") == "s3cret"

    def test_nonce_makes_tokens_unique(self, cipher):
        tenant = uuid4()
        first = cipher.encrypt("same", tenant, "ctaima", "a", "password")
        second = cipher.encrypt("same", tenant, "ctaima", "a", "password")
        assert first != second

    @pytest.mark.parametrize(
        "tenant_changed,platform,alias,field",
        [
            (True, "nalanda", "nalanda-default", "password"),
            (False, "ctaima", "nalanda-default", "password"),
            (False, "nalanda", "other", "password"),
            (False, "nalanda", "nalanda-default", "username"),
        ],
    )
    def test_moved_ciphertext_fails(self, cipher, tenant_changed, platform, alias, field):
        tenant = uuid4()
        token = cipher.encrypt("s3cret", tenant, "nalanda", "nalanda-default", "password")
        target_tenant = uuid4() if tenant_changed else tenant

        with pytest.raises(VaultKeyError):
            cipher.decrypt(token, target_tenant, platform, alias, field)

    def test_other_master_key_cannot_decrypt(self, cipher):
        tenant = uuid4()
        token = cipher.encrypt("s3cret", tenant, "nalanda", "a", "password")
        stranger = SecretCipher(bytes(32))
        with pytest.raises(VaultKeyError):
            stranger.decrypt(token, tenant, "nalanda", "a", "password")

    def test_legacy_base64_is_readable(self, cipher):
        legacy = base64.b64encode(b"old-password").decode("ascii")
        assert cipher.decrypt(legacy, uuid4(), "nalanda", "a", "password") == "old-password"
        assert not is_encrypted(legacy)

    def test_garbage_is_rejected(self, cipher):
        with pytest.raises(VaultKeyError):
            cipher.decrypt("not base64 !!", uuid4(), "nalanda", "a", "password")


class TestMasterKey:
    def test_missing_key_fails_closed(self):
        with pytest.raises(VaultKeyError):
            parse_master_key("")
        with pytest.raises(VaultKeyError):
            parse_master_key(None)

    def test_base64_key(self):
        raw = bytes(range(32))
        encoded = "base64:" + base64.urlsafe_b64encode(raw).decode("ascii")
        assert parse_master_key(encoded) == raw

    def test_base64_key_wrong_length(self):
        with pytest.raises(VaultKeyError):
            parse_master_key("base64:" + base64.urlsafe_b64encode(b"short").decode("ascii"))

    def test_hex_key(self):
        raw = bytes(range(32))
        assert parse_master_key(raw.hex()) == raw

    def test_passphrase_is_hashed(self):
        assert len(parse_master_key("correct horse battery staple")) == 32

    def test_cipher_rejects_short_key(self):
        with pytest.raises(VaultKeyError):
            SecretCipher(b"too-short")


class TestCredentialVault:
    @pytest.mark.asyncio
    async def test_save_then_get(self, db_session, vault, ctx):
        assert await vault.save(db_session, ctx, Platform.NALANDA, "u", "hunter2") is True

        secret = await vault.get(db_session, ctx.tenant_id, Platform.NALANDA)

        assert secret.username == "u"
        assert secret.password == "hunter2"
        assert secret.alias == "nalanda-default"
        assert secret.state == CredentialState.READY
        assert "hunter2" not in repr(secret)

    @pytest.mark.asyncio
    async def test_stored_values_are_encrypted(self, db_session, vault, ctx):
        await vault.save(db_session, ctx, Platform.NALANDA, "site-user", "hunter2")

        row = (await db_session.execute(select(PlatformCredential))).scalar_one()
        assert is_encrypted(row.username_encrypted)
        assert is_encrypted(row.password_encrypted)
        assert "hunter2" not in row.password_encrypted

    @pytest.mark.asyncio
    async def test_save_overwrites_alias(self, db_session, vault, ctx):
        await vault.save(db_session, ctx, Platform.CTAIMA, "u1", "p1", alias="main")
        await vault.save(db_session, ctx, Platform.CTAIMA, "u2", "p2", alias="main")

        rows = (await db_session.execute(select(PlatformCredential))).scalars().all()
        assert len(rows) == 1
        secret = await vault.get(db_session, ctx.tenant_id, Platform.CTAIMA, alias="main")
        assert (secret.username, secret.password) == ("u2", "p2")

    @pytest.mark.asyncio
    async def test_get_without_alias_falls_back_to_latest(self, db_session, vault, ctx):
        await vault.save(db_session, ctx, Platform.ECOORDINA, "u", "p", alias="site-a")
        secret = await vault.get(db_session, ctx.tenant_id, Platform.ECOORDINA)
        assert secret.alias == "site-a"

    @pytest.mark.asyncio
    async def test_missing_credential_is_none(self, db_session, vault, ctx):
        assert await vault.get(db_session, ctx.tenant_id, Platform.NALANDA) is None

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, db_session, vault, ctx, other_ctx):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        assert await vault.get(db_session, other_ctx.tenant_id, Platform.NALANDA) is None
        assert await vault.list_for_tenant(db_session, other_ctx.tenant_id) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "p"), ("u", "")])
    async def test_empty_fields_rejected(self, db_session, vault, ctx, username, password):
        with pytest.raises(ValidationError):
            await vault.save(db_session, ctx, Platform.NALANDA, username, password)

    @pytest.mark.asyncio
    async def test_unknown_platform_rejected(self, db_session, vault, ctx):
        with pytest.raises(ValidationError):
            await vault.save(db_session, ctx, "myportal", "u", "p")

    @pytest.mark.asyncio
    async def test_list_returns_summaries(self, db_session, vault, ctx):
        await vault.save(db_session, ctx, Platform.NALANDA, "n-user", "n-pass")
        await vault.save(db_session, ctx, Platform.CTAIMA, "c-user", "c-pass")

        summaries = await vault.list_for_tenant(db_session, ctx.tenant_id)

        assert [s.platform for s in summaries] == [Platform.CTAIMA, Platform.NALANDA]
        assert [s.username for s in summaries] == ["c-user", "n-user"]
        assert all(not hasattr(s, "password") for s in summaries)

    @pytest.mark.asyncio
    async def test_mark_state(self, db_session, vault, ctx, other_ctx):
        await vault.save(db_session, ctx, Platform.NALANDA, "u", "p")
        secret = await vault.get(db_session, ctx.tenant_id, Platform.NALANDA)

        assert await vault.mark_state(db_session, other_ctx, secret.id, CredentialState.INVALID) is False
        assert await vault.mark_state(db_session, ctx, secret.id, CredentialState.INVALID) is True

        updated = await vault.get(db_session, ctx.tenant_id, Platform.NALANDA)
        assert updated.state == CredentialState.INVALID
        assert updated.last_validated is not None

    @pytest.mark.asyncio
    async def test_legacy_row_is_migrated_on_read(self, db_session, vault, ctx):
        db_session.add(
            PlatformCredential(
                tenant_id=ctx.tenant_id,
                platform_type="nalanda",
                alias="nalanda-default",
                username_encrypted=base64.b64encode(b"legacy-user").decode("ascii"),
                password_encrypted=base64.b64encode(b"legacy-pass").decode("ascii"),
                state="ready",
            )
        )
        await db_session.commit()

        secret = await vault.get(db_session, ctx.tenant_id, Platform.NALANDA)
        assert (secret.username, secret.password) == ("legacy-user", "legacy-pass")

        row = (await db_session.execute(select(PlatformCredential))).scalar_one()
        assert is_encrypted(row.username_encrypted)
        assert is_encrypted(row.password_encrypted)


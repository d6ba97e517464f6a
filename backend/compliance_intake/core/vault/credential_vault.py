"""
Credential Vault for per-tenant portal logins.

Stores one encrypted username/password pair per (tenant, platform, alias).
Saving an existing alias overwrites it. Secrets are decrypted only when a
caller asks for a specific credential with ``get``; listings return
summaries without the password.

A missing credential is an expected state: ``get`` returns None and callers
report the platform as "not configured".

Usage:
    from compliance_intake.core.vault.credential_vault import credential_vault

    await credential_vault.save(session, ctx, Platform.NALANDA, "user", "secret")
    secret = await credential_vault.get(session, ctx.tenant_id, Platform.NALANDA)
    if secret is None:
        ...  # not configured
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import PlatformCredential
from ..errors import ValidationError
from ..models.context import TenantContext
from ..models.enums import CredentialState, Platform
from ..shared.audit_service import audit_service
from .crypto import SecretCipher, is_encrypted

logger = logging.getLogger("compliance.vault")

USERNAME_FIELD = "username"
PASSWORD_FIELD = "password"


def default_alias(platform: Platform) -> str:
    return f"{Platform(platform).value}-default"


@dataclass(frozen=True)
class PlatformSecret:
    """Decrypted credential, handed out only for display or use."""
    id: UUID
    platform: Platform
    alias: str
    username: str
    password: str
    state: CredentialState
    last_validated: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"PlatformSecret(platform={self.platform.value}, alias={self.alias}, username={self.username})"


@dataclass(frozen=True)
class CredentialSummary:
    """Credential listing entry; the password is never decrypted for it."""
    id: UUID
    platform: Platform
    alias: str
    username: str
    state: CredentialState
    last_validated: Optional[datetime]
    updated_at: datetime


class CredentialVault:
    """
    Service for PlatformCredential records.

    Args:
        cipher: Encryption scheme; defaults to one built from settings on
            first use
    """

    def __init__(self, cipher: Optional[SecretCipher] = None):
        self._cipher = cipher

    @property
    def cipher(self) -> SecretCipher:
        if self._cipher is None:
            self._cipher = SecretCipher.from_settings()
        return self._cipher

    def _encrypt_row(
        self, row: PlatformCredential, username: str, password: str
    ) -> None:
        row.username_encrypted = self.cipher.encrypt(
            username, row.tenant_id, row.platform_type, row.alias, USERNAME_FIELD
        )
        row.password_encrypted = self.cipher.encrypt(
            password, row.tenant_id, row.platform_type, row.alias, PASSWORD_FIELD
        )

    def _decrypt(self, row: PlatformCredential, field: str) -> str:
        token = row.username_encrypted if field == USERNAME_FIELD else row.password_encrypted
        return self.cipher.decrypt(token, row.tenant_id, row.platform_type, row.alias, field)

    # =========================================================================
    # CREATE / UPDATE OPERATIONS
    # =========================================================================

    async def save(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        platform: Platform,
        username: str,
        password: str,
        alias: Optional[str] = None,
    ) -> bool:
        """
        Create or overwrite the credential for (tenant, platform, alias).

        Args:
            session: Database session
            ctx: Tenant context
            platform: Portal the login is for
            username: Portal username
            password: Portal password
            alias: Operator-facing name, ``{platform}-default`` when omitted

        Returns:
            True once the credential is stored

        Raises:
            ValidationError: If a field is empty or the platform is unknown
            VaultKeyError: If no master key is configured
        """
        try:
            platform = Platform(platform)
        except ValueError:
            raise ValidationError(f"Unknown platform {platform!r}") from None
        if not username or not password:
            raise ValidationError("Username and password are required")
        alias = (alias or "").strip() or default_alias(platform)

        row = await self._find(session, ctx.tenant_id, platform, alias)
        created = row is None
        if created:
            row = PlatformCredential(tenant_id=ctx.tenant_id, platform_type=platform.value, alias=alias)
            session.add(row)
        self._encrypt_row(row, username, password)
        row.state = CredentialState.READY.value
        row.updated_at = datetime.utcnow()

        try:
            await session.commit()
        except IntegrityError:
            # Concurrent save of the same alias won the insert; overwrite it
            await session.rollback()
            row = await self._find(session, ctx.tenant_id, platform, alias)
            if row is None:
                raise
            created = False
            self._encrypt_row(row, username, password)
            row.state = CredentialState.READY.value
            row.updated_at = datetime.utcnow()
            await session.commit()

        logger.info(
            f"{'Created' if created else 'Updated'} {platform.value} credential '{alias}' "
            f"for tenant {ctx.tenant_id}"
        )
        await audit_service.log_for(
            session,
            ctx,
            action="credential.saved",
            resource_type="platform_credential",
            resource_id=row.id,
            details={"platform": platform.value, "alias": alias, "created": created},
        )
        return True

    async def mark_state(
        self,
        session: AsyncSession,
        ctx: TenantContext,
        credential_id: UUID,
        state: CredentialState,
    ) -> bool:
        """
        Record the outcome of an operator login check.

        Returns:
            True if updated, False if the credential does not exist
        """
        state = CredentialState(state)
        result = await session.execute(
            select(PlatformCredential).where(
                PlatformCredential.id == credential_id,
                PlatformCredential.tenant_id == ctx.tenant_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return False

        row.state = state.value
        if state is not CredentialState.PENDING:
            row.last_validated = datetime.utcnow()
        await session.commit()

        await audit_service.log_for(
            session,
            ctx,
            action="credential.state_changed",
            resource_type="platform_credential",
            resource_id=row.id,
            details={"platform": row.platform_type, "alias": row.alias, "state": state.value},
        )
        return True

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def _find(
        self, session: AsyncSession, tenant_id: UUID, platform: Platform, alias: str
    ) -> Optional[PlatformCredential]:
        result = await session.execute(
            select(PlatformCredential).where(
                PlatformCredential.tenant_id == tenant_id,
                PlatformCredential.platform_type == Platform(platform).value,
                PlatformCredential.alias == alias,
            )
        )
        return result.scalar_one_or_none()

    async def get(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        platform: Platform,
        alias: Optional[str] = None,
    ) -> Optional[PlatformSecret]:
        """
        Decrypted credential for a platform.

        Without an alias the default alias is used, falling back to the most
        recently updated credential of the platform.

        Returns:
            PlatformSecret, or None when nothing is configured
        """
        platform = Platform(platform)
        if alias:
            row = await self._find(session, tenant_id, platform, alias)
        else:
            row = await self._find(session, tenant_id, platform, default_alias(platform))
            if row is None:
                result = await session.execute(
                    select(PlatformCredential)
                    .where(
                        PlatformCredential.tenant_id == tenant_id,
                        PlatformCredential.platform_type == platform.value,
                    )
                    .order_by(PlatformCredential.updated_at.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
        if row is None:
            return None

        username = self._decrypt(row, USERNAME_FIELD)
        password = self._decrypt(row, PASSWORD_FIELD)

        if not (is_encrypted(row.username_encrypted) and is_encrypted(row.password_encrypted)):
            self._encrypt_row(row, username, password)
            await session.commit()
            logger.info(f"Migrated legacy-encoded credential {row.id} to AES-GCM")

        return PlatformSecret(
            id=row.id,
            platform=platform,
            alias=row.alias,
            username=username,
            password=password,
            state=CredentialState(row.state),
            last_validated=row.last_validated,
        )

    async def list_for_tenant(
        self, session: AsyncSession, tenant_id: UUID
    ) -> List[CredentialSummary]:
        result = await session.execute(
            select(PlatformCredential)
            .where(PlatformCredential.tenant_id == tenant_id)
            .order_by(PlatformCredential.platform_type, PlatformCredential.alias)
        )
        return [
            CredentialSummary(
                id=row.id,
                platform=Platform(row.platform_type),
                alias=row.alias,
                username=self._decrypt(row, USERNAME_FIELD),
                state=CredentialState(row.state),
                last_validated=row.last_validated,
                updated_at=row.updated_at,
            )
            for row in result.scalars().all()
        ]


# Singleton instance
credential_vault = CredentialVault()

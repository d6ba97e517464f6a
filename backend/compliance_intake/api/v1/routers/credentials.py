"""
Credential Vault API Router.

Per-tenant portal logins used by operators for manual uploads. Listings never
include passwords; a single credential is decrypted only when fetched by
platform.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database.base import get_db
from ....core.models.context import TenantContext
from ....core.models.enums import Platform
from ....core.vault.credential_vault import CredentialVault
from ....dependencies import get_credential_vault, get_tenant_context
from ..models import (
    CredentialResponse,
    CredentialSaveRequest,
    CredentialStateRequest,
    CredentialSummaryResponse,
)

logger = logging.getLogger("compliance.api.credentials")

router = APIRouter(prefix="/credentials", tags=["Credentials"])


@router.post("", status_code=201)
async def save_credential(
    request: CredentialSaveRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
):
    """Create or overwrite the login for a platform alias."""
    saved = await vault.save(
        db, ctx, request.platform, request.username, request.password, alias=request.alias
    )
    return {"saved": saved}


@router.get("", response_model=List[CredentialSummaryResponse])
async def list_credentials(
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
):
    summaries = await vault.list_for_tenant(db, ctx.tenant_id)
    return [CredentialSummaryResponse.model_validate(s) for s in summaries]


@router.get("/{platform}", response_model=CredentialResponse)
async def get_credential(
    platform: Platform,
    alias: Optional[str] = Query(None),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
):
    """Decrypted login for a platform (default alias unless one is given)."""
    secret = await vault.get(db, ctx.tenant_id, platform, alias=alias)
    if secret is None:
        raise HTTPException(status_code=404, detail=f"Credential not configured for {platform.value}")
    return CredentialResponse.model_validate(secret)


@router.post("/{credential_id}/state")
async def update_credential_state(
    credential_id: UUID,
    request: CredentialStateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
):
    """Record whether the login worked on the portal."""
    if not await vault.mark_state(db, ctx, credential_id, request.state):
        raise HTTPException(status_code=404, detail="Credential not found")
    return {"id": str(credential_id), "state": request.state.value}

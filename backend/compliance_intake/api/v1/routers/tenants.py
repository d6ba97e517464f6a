"""
Tenant hierarchy and outbound message endpoints.

Tenants own client companies, companies own projects. Contact addresses on
projects and companies are where corruption notices are sent.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database.base import get_db
from ....core.models.context import TenantContext
from ....core.shared.messaging_service import messaging_service
from ....core.shared.tenant_service import tenant_service
from ....dependencies import get_tenant_context
from ..models import (
    CompanyCreateRequest,
    CompanyResponse,
    MessageResponse,
    ProjectCreateRequest,
    ProjectResponse,
    TenantCreateRequest,
    TenantResponse,
)

logger = logging.getLogger("compliance.api.tenants")

router = APIRouter(tags=["Tenants"])


@router.post("/tenants", response_model=TenantResponse, status_code=201)
async def create_tenant(request: TenantCreateRequest, db: AsyncSession = Depends(get_db)):
    tenant = await tenant_service.create_tenant(db, request.name, request.slug)
    return TenantResponse.model_validate(tenant)


@router.post("/companies", response_model=CompanyResponse, status_code=201)
async def create_company(
    request: CompanyCreateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    company = await tenant_service.create_company(
        db, ctx.tenant_id, request.name, contact_email=request.contact_email, tax_id=request.tax_id
    )
    return CompanyResponse.model_validate(company)


@router.post("/companies/{company_id}/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    company_id: UUID,
    request: ProjectCreateRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    project = await tenant_service.create_project(
        db,
        ctx.tenant_id,
        company_id,
        request.name,
        contact_email=request.contact_email,
        code=request.code,
    )
    return ProjectResponse.model_validate(project)


@router.get("/companies/{company_id}/projects", response_model=List[ProjectResponse])
async def list_projects(
    company_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    if await tenant_service.get_company(db, ctx.tenant_id, company_id) is None:
        raise HTTPException(status_code=404, detail="Company not found")
    projects = await tenant_service.list_projects(db, ctx.tenant_id, company_id)
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/messages", response_model=List[MessageResponse])
async def list_messages(
    document_id: Optional[UUID] = Query(None, description="Only messages about this document"),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    """Outbound client notifications for the tenant, oldest first."""
    messages = await messaging_service.list_messages(db, ctx.tenant_id, related_document_id=document_id)
    return [MessageResponse.model_validate(m) for m in messages]

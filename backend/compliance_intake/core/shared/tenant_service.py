"""
Tenant Service for the tenant -> company -> project hierarchy.

All lookups are tenant-scoped: asking for a company or project with the
wrong tenant id behaves exactly like asking for one that does not exist.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import Company, Project, Tenant
from ..errors import ValidationError

logger = logging.getLogger("compliance.tenants")


class TenantService:

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    async def create_tenant(self, session: AsyncSession, name: str, slug: str) -> Tenant:
        tenant = Tenant(name=name, slug=slug)
        session.add(tenant)
        await session.commit()
        logger.info(f"Created tenant {tenant.slug} ({tenant.id})")
        return tenant

    async def create_company(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        name: str,
        contact_email: Optional[str] = None,
        tax_id: Optional[str] = None,
    ) -> Company:
        company = Company(
            tenant_id=tenant_id, name=name, contact_email=contact_email, tax_id=tax_id
        )
        session.add(company)
        await session.commit()
        return company

    async def create_project(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        company_id: UUID,
        name: str,
        contact_email: Optional[str] = None,
        code: Optional[str] = None,
    ) -> Project:
        """
        Create a project under a company of the same tenant.

        Raises:
            ValidationError: If the company does not belong to the tenant
        """
        if await self.get_company(session, tenant_id, company_id) is None:
            raise ValidationError(f"Company {company_id} not found for tenant")

        project = Project(
            tenant_id=tenant_id,
            company_id=company_id,
            name=name,
            contact_email=contact_email,
            code=code,
        )
        session.add(project)
        await session.commit()
        return project

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_company(
        self, session: AsyncSession, tenant_id: UUID, company_id: UUID
    ) -> Optional[Company]:
        result = await session.execute(
            select(Company).where(Company.id == company_id, Company.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_project(
        self, session: AsyncSession, tenant_id: UUID, project_id: UUID
    ) -> Optional[Project]:
        result = await session.execute(
            select(Project).where(Project.id == project_id, Project.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def list_projects(
        self, session: AsyncSession, tenant_id: UUID, company_id: UUID
    ) -> List[Project]:
        result = await session.execute(
            select(Project)
            .where(Project.tenant_id == tenant_id, Project.company_id == company_id)
            .order_by(Project.name)
        )
        return list(result.scalars().all())

    async def contact_addresses(
        self, session: AsyncSession, tenant_id: UUID, project_id: UUID
    ) -> List[str]:
        """
        Notification recipients for a project.

        The project's own contact address wins; the company contact is used
        only when the project has none.
        """
        result = await session.execute(
            select(Project.contact_email, Company.contact_email)
            .join(Company, Company.id == Project.company_id)
            .where(Project.id == project_id, Project.tenant_id == tenant_id)
        )
        row = result.first()
        if row is None:
            return []
        project_email, company_email = row
        address = project_email or company_email
        return [address] if address else []


# Singleton instance
tenant_service = TenantService()

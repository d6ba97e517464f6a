"""
Messaging Service for client notifications.

Messages are written to the ``outbound_messages`` outbox inside the caller's
transaction; delivery (email, in-app) is handled outside this backend.

Usage:
    from compliance_intake.core.shared.messaging_service import messaging_service

    message_id = await messaging_service.create_message(
        session=session,
        tenant_id=tenant_id,
        recipients=["site-office@example.com"],
        title="Corrupt file detected",
        body="...",
        priority=MessagePriority.HIGH,
    )
"""

import logging
import uuid
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.models import OutboundMessage
from ..errors import ValidationError
from ..models.enums import MessagePriority

logger = logging.getLogger("compliance.messaging")


class MessagingService:

    async def create_message(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        recipients: Sequence[str],
        title: str,
        body: str,
        priority: MessagePriority = MessagePriority.NORMAL,
        message_type: str = "info",
        related_document_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Queue a message for delivery.

        The row is flushed but not committed; it becomes visible when the
        caller commits.

        Returns:
            The new message id

        Raises:
            ValidationError: If there are no recipients
        """
        addresses = [r.strip() for r in recipients if r and r.strip()]
        if not addresses:
            raise ValidationError("A message needs at least one recipient")

        message = OutboundMessage(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            recipients=addresses,
            title=title,
            body=body,
            priority=MessagePriority(priority).value,
            message_type=message_type,
            related_document_id=related_document_id,
        )
        session.add(message)
        await session.flush()

        logger.info(f"Queued {message.priority} message {message.id} to {len(addresses)} recipient(s)")
        return message.id

    async def list_messages(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        related_document_id: Optional[UUID] = None,
    ) -> List[OutboundMessage]:
        query = select(OutboundMessage).where(OutboundMessage.tenant_id == tenant_id)
        if related_document_id is not None:
            query = query.where(OutboundMessage.related_document_id == related_document_id)
        result = await session.execute(query.order_by(OutboundMessage.created_at))
        return list(result.scalars().all())


# Singleton instance
messaging_service = MessagingService()

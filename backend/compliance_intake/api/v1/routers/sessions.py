"""
Upload Session API Router.

An operator opens a session before a round of manual uploads and sends its
id in ``X-Upload-Session-Id`` with every queue status change. Ending the
session stores counters computed from those changes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.database.base import get_db
from ....core.fulfillment.session_tracker import SessionTracker
from ....dependencies import get_session_tracker
from ..models import SessionEndRequest, SessionResponse, SessionStartRequest

logger = logging.getLogger("compliance.api.sessions")

router = APIRouter(prefix="/sessions", tags=["Upload Sessions"])


async def _load(db: AsyncSession, tracker: SessionTracker, session_id: UUID) -> SessionResponse:
    upload_session = await tracker.get(db, session_id)
    if upload_session is None:
        raise HTTPException(status_code=404, detail="Upload session not found")
    return SessionResponse.model_validate(upload_session)


@router.post("", response_model=SessionResponse, status_code=201)
async def start_session(
    request: SessionStartRequest,
    db: AsyncSession = Depends(get_db),
    tracker: SessionTracker = Depends(get_session_tracker),
):
    session_id = await tracker.start(db, request.operator_id)
    return await _load(db, tracker, session_id)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    tracker: SessionTracker = Depends(get_session_tracker),
):
    return await _load(db, tracker, session_id)


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(
    session_id: UUID,
    request: SessionEndRequest,
    db: AsyncSession = Depends(get_db),
    tracker: SessionTracker = Depends(get_session_tracker),
):
    if not await tracker.end(db, session_id, notes=request.notes):
        raise HTTPException(status_code=409, detail="Upload session is not active")
    return await _load(db, tracker, session_id)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: UUID,
    request: SessionEndRequest,
    db: AsyncSession = Depends(get_db),
    tracker: SessionTracker = Depends(get_session_tracker),
):
    if not await tracker.cancel(db, session_id, notes=request.notes):
        raise HTTPException(status_code=409, detail="Upload session is not active")
    return await _load(db, tracker, session_id)

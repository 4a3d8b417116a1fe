# routes/discussion_route.py
from fastapi import APIRouter, Depends, Query
from typing import List

from core.auth.dependencies import get_current_user
from core.discussions.service import DiscussionService
from database.mongo import discussions_collection, users_collection
from models.discussion_model import (
    CurrentUser,
    DiscussionOut,
    DiscussionSummary,
    MessageEdit,
    MessageIn,
    MessagePermissionsOut,
)

router = APIRouter(prefix="/discussions", tags=["Discussions"])


def get_discussion_service() -> DiscussionService:
    return DiscussionService(discussions_collection, users_collection)


# ================== Routes ==================

# Declared before /{itemType}/{itemId} so "user/me" is not read as an item
@router.get("/user/me", response_model=List[DiscussionSummary])
async def list_my_discussions(
    limit: int = Query(default=10, ge=1, le=50),
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    """Discussions the caller has posted in, most recently active first"""
    return await service.list_user_discussions(user, limit=limit)


@router.get("/{item_type}/{item_id}", response_model=DiscussionOut)
async def get_discussion(
    item_type: str,
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    return await service.get_discussion(item_type, item_id)


@router.post("/{item_type}/{item_id}/message", response_model=DiscussionOut)
async def post_message(
    item_type: str,
    item_id: str,
    payload: MessageIn,
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    return await service.post_message(
        item_type, item_id, user, payload.content, payload.parent_message_id
    )


@router.put("/{discussion_id}/message/{message_id}", response_model=DiscussionOut)
async def edit_message(
    discussion_id: str,
    message_id: str,
    payload: MessageEdit,
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    """Author only, admins included in the restriction"""
    return await service.edit_message(discussion_id, message_id, user, payload.content)


@router.delete("/{discussion_id}/message/{message_id}", response_model=DiscussionOut)
async def delete_message(
    discussion_id: str,
    message_id: str,
    cascade: bool = Query(default=False, description="Also tombstone every reply below the message"),
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    return await service.delete_message(discussion_id, message_id, user, cascade=cascade)


@router.post("/{discussion_id}/message/{message_id}/like", response_model=DiscussionOut)
async def toggle_like(
    discussion_id: str,
    message_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    return await service.toggle_like(discussion_id, message_id, user)


@router.get("/{discussion_id}/message/{message_id}/permissions", response_model=MessagePermissionsOut)
async def get_message_permissions(
    discussion_id: str,
    message_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DiscussionService = Depends(get_discussion_service),
):
    """
    JSON for the client:
    {"owned": bool, "canEdit": bool, "canDelete": bool}
    """
    return await service.get_permissions(discussion_id, message_id, user)

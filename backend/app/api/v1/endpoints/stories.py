"""
Story endpoints.

WHAT: Post and browse stories, likes, threaded comments, reports
WHY: Social feed next to the catalog
HOW: story_service; like counts and new comments are also pushed on "stories"
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ....core.realtime import RealtimeHub
from ....models.api_schemas import CommentRequest, ReportRequest
from ....services import story_service
from ....utils.storage import save_upload
from ...deps import CurrentUser, get_current_user, get_hub, get_optional_user

router = APIRouter()


@router.get("/stories")
def list_stories(media_type: Optional[Literal["image", "video"]] = None,
                 viewer: Optional[CurrentUser] = Depends(get_optional_user)):
    return story_service.list_stories(viewer.id if viewer else None, media_type)


@router.post("/stories")
def create_story(
    caption: Optional[str] = Form(default=None, max_length=500),
    media: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
):
    """Post an image or video story; the media type comes from the upload."""
    media_url, media_type = save_upload(media, allow_video=True)
    story = story_service.create_story(user.id, media_url, media_type, caption)
    return {"Status": "Success", "story": story}


@router.delete("/stories/{story_id}")
def delete_story(story_id: int, user: CurrentUser = Depends(get_current_user)):
    story_service.delete_story(story_id, user.id, is_admin=user.is_admin)
    return {"Status": "Success"}


@router.put("/stories/{story_id}/like")
def toggle_story_like(story_id: int, user: CurrentUser = Depends(get_current_user),
                      hub: RealtimeHub = Depends(get_hub)):
    return {"Status": "Success", **story_service.toggle_story_like(hub, user.id, story_id)}


@router.get("/stories/{story_id}/comments")
def list_comments(story_id: int, tree: bool = False,
                  viewer: Optional[CurrentUser] = Depends(get_optional_user)):
    """Flat list by default; ?tree=true nests replies under their parents."""
    viewer_id = viewer.id if viewer else None
    if tree:
        return story_service.comment_tree(story_id, viewer_id)
    return story_service.list_comments(story_id, viewer_id)


@router.post("/stories/{story_id}/comments")
def add_comment(story_id: int, request: CommentRequest,
                user: CurrentUser = Depends(get_current_user),
                hub: RealtimeHub = Depends(get_hub)):
    comment = story_service.add_comment(hub, user.id, story_id, request.comment, request.parent_id)
    return {"Status": "Success", "comment": comment}


@router.post("/comments/{comment_id}/like")
def toggle_comment_like(comment_id: int, user: CurrentUser = Depends(get_current_user),
                        hub: RealtimeHub = Depends(get_hub)):
    return {"Status": "Success", **story_service.toggle_comment_like(hub, user.id, comment_id)}


@router.post("/stories/{story_id}/report")
def report_story(story_id: int, request: ReportRequest,
                 user: CurrentUser = Depends(get_current_user),
                 hub: RealtimeHub = Depends(get_hub)):
    report = story_service.report_story(hub, user.id, story_id, request.reason)
    return {"Status": "Success", "report": report}

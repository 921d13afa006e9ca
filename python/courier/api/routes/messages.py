"""Messages API routes.

Route handlers for sending and reading user-to-user messages.
Routes are transport-only: each calls exactly one service function.

All routes require authentication (403 "Forbidden." otherwise).
Listings are bare JSON arrays; pagination is reported through the
Link (rel="next"/"prev") and X-Total-Count headers.
Error body: {"message": "...", "code": "...", "request_id": "..."}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from courier.api.deps import get_db, get_page, get_per_page
from courier.auth.middleware import Viewer, get_viewer
from courier.responses import paginated_response
from courier.schemas.messages import MarkReadRequest, SendMessageRequest
from courier.services import messages as messages_service

router = APIRouter(prefix="/api", tags=["messages"])


@router.get("/messages")
def list_inbox(
    request: Request,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Depends(get_page)],
    per_page: Annotated[int, Depends(get_per_page)],
) -> JSONResponse:
    """List the viewer's inbox: one row per correspondent, latest activity first.

    Errors:
        E_FORBIDDEN (403): Not authenticated.
        E_INVALID_REQUEST (400): page < 1.
    """
    threads, page_info = messages_service.list_inbox(
        db=db,
        viewer_id=viewer.user_id,
        page=page,
        per_page=per_page,
    )
    return paginated_response(
        request, [t.model_dump(mode="json", by_alias=True) for t in threads], page_info
    )


@router.post("/messages", status_code=200)
def send_message(
    body: SendMessageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Send a message to another user.

    Errors:
        E_FORBIDDEN (403): Not authenticated.
        E_SELF_MESSAGE_FORBIDDEN (403): userTo is the viewer.
        E_INVALID_REQUEST (400): Empty or oversized content, malformed body.
        E_USER_NOT_FOUND (404): Recipient doesn't exist or is private.
    """
    result = messages_service.send_message(
        db=db,
        viewer_id=viewer.user_id,
        user_to_id=body.user_to,
        content=body.content,
    )
    return result.model_dump(mode="json", by_alias=True)


@router.get("/messages/{user_id}")
def list_thread(
    user_id: UUID,
    request: Request,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Depends(get_page)],
    per_page: Annotated[int, Depends(get_per_page)],
) -> JSONResponse:
    """List messages exchanged with one user, newest first, 20 per page.

    Errors:
        E_FORBIDDEN (403): Not authenticated.
        E_INVALID_REQUEST (400): Malformed user id or page < 1.
    """
    messages, page_info = messages_service.list_thread(
        db=db,
        viewer_id=viewer.user_id,
        user_id=user_id,
        page=page,
        per_page=per_page,
    )
    return paginated_response(
        request, [m.model_dump(mode="json", by_alias=True) for m in messages], page_info
    )


@router.post("/messages-read", status_code=200)
def mark_messages_read(
    body: MarkReadRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Mark received messages as read. Unknown or foreign ids are ignored."""
    updated = messages_service.mark_read(
        db=db,
        viewer_id=viewer.user_id,
        message_ids=body.message_ids,
    )
    return {"updated": updated}


@router.get("/messages-count")
def count_unread(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Count unread messages received by the viewer."""
    unread = messages_service.count_unread(db=db, viewer_id=viewer.user_id)
    return {"unread": unread}

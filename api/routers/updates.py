"""
Updates API Endpoints.

A user's notification inbox: listing and marking updates read.
"""

from fastapi import APIRouter, Depends, Request

from api.dependencies import ServiceContainer, get_container, get_current_user
from api.errors import to_http_exception
from api.models import UpdatePage, UpdateResponse
from api.pagination import PageParams, paginate
from domain.errors import Forbidden, LeadLifecycleError
from domain.user import User

router = APIRouter()


@router.get(
    "/updates/user/{user_id}/",
    response_model=UpdatePage,
    summary="User Updates",
    description="The user's updates, newest first. Users can only read their own inbox."
)
def list_user_updates(
    user_id: str,
    request: Request,
    page: PageParams = Depends(),
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        if user.id != user_id:
            raise Forbidden("You can only view your own updates")
        updates = container.notifications.list_for_user(user_id)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return paginate(request, updates, page, UpdateResponse.from_domain)


@router.patch(
    "/updates/{update_id}/read/",
    response_model=UpdateResponse,
    summary="Mark Update Read",
    description="Mark an update as read. Repeating the call keeps the first read time."
)
def mark_update_read(
    update_id: int,
    user: User = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    try:
        update = container.notifications.mark_read(update_id, user)
    except LeadLifecycleError as e:
        raise to_http_exception(e)
    return UpdateResponse.from_domain(update)

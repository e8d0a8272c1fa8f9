"""Out-of-band event endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from onboarding_bot.domain.notifications import (
    PROCEED_TO_FINAL_MESSAGE,
    NotificationEvent,
    NotificationType,
)

if TYPE_CHECKING:
    from onboarding_bot.containers import AppContainer

router = APIRouter(tags=["notifications"])


class MiniAppClosedRequest(BaseModel):
    """Signal sent by the mini app when the user closes it."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(alias="userId")
    next_action: str = Field(default=PROCEED_TO_FINAL_MESSAGE, alias="nextAction")


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.post("/notifications", dependencies=[Depends(require_admin)])
async def receive_notification(
    event: NotificationEvent, request: Request
) -> dict[str, str]:
    """Apply an asynchronous job or system event."""
    container: AppContainer = request.app.state.container
    await container.notification_bridge.handle(event)
    return {"status": "accepted"}


@router.post("/mini-app/closed", dependencies=[Depends(require_admin)])
async def mini_app_closed(
    payload: MiniAppClosedRequest, request: Request
) -> dict[str, str]:
    """Turn a mini app close signal into a notification event."""
    container: AppContainer = request.app.state.container
    user = container.user_service.get_user(payload.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    event = NotificationEvent(
        type=NotificationType.MINI_APP_CLOSED.value,
        subject_user_id=user.id,
        chat_id=user.chat_id,
        data={"nextAction": payload.next_action},
    )
    await container.notification_bridge.handle(event)
    return {"status": "accepted"}

import hmac

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.api.deps import get_current_user, get_db, require_roles
from jawara.core.config import get_settings
from jawara.core.security import decode_token
from jawara.models.notification import Notification, NotificationStatus, NotificationType
from jawara.models.user import User, UserRole
from jawara.schemas.notification import NotificationCreate, NotificationOut, NotificationStatusUpdate
from jawara.services.alerts import generate_exam_reminders
from jawara.services.assignments import viewer_for_user
from jawara.services.audit import log_activity
from jawara.services.notifications import create_notification, publish_realtime_notification
from jawara.services.realtime import realtime_hub

router = APIRouter()

settings = get_settings()


def _get_own_notification(db: Session, user: User, notification_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None),
    status_filter: NotificationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = (
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id)
    )
    if notification_type:
        query = query.where(Notification.notification_type == notification_type)
    if status_filter:
        query = query.where(Notification.status == status_filter)
    query = query.offset(offset).limit(limit)
    return list(db.execute(query).scalars())


@router.post("/notifications", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def send_notification(
    payload: NotificationCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> NotificationOut:
    recipient = db.get(User, payload.target_user_id)
    if recipient is None or not recipient.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    notification = create_notification(
        db,
        user_id=recipient.id,
        title=payload.title,
        message=payload.message,
        notification_type=payload.notification_type,
        details={"sender_id": current_user.id, "sender_role": current_user.role.value},
    )
    log_activity(
        db,
        actor=current_user,
        action="notification.send",
        entity_type="notification",
        entity_id=notification.id,
    )
    db.commit()
    db.refresh(notification)
    return notification


@router.patch("/notifications/{notification_id}", response_model=NotificationOut)
def update_notification_status(
    notification_id: str,
    payload: NotificationStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = _get_own_notification(db, current_user, notification_id)
    notification.status = payload.status
    db.commit()
    db.refresh(notification)
    publish_realtime_notification(notification, event=f"notification.{payload.status.value}")
    return notification


@router.post("/notifications/read-all")
def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    notifications = list(
        db.execute(
            select(Notification).where(
                Notification.user_id == current_user.id,
                Notification.status == NotificationStatus.unread,
            )
        ).scalars()
    )
    for notification in notifications:
        notification.status = NotificationStatus.read
        publish_realtime_notification(notification, event="notification.read")

    if notifications:
        log_activity(
            db,
            actor=current_user,
            action="notification.read_all",
            entity_type="notification",
            details={"count": len(notifications)},
        )
    db.commit()
    return {"updated": len(notifications)}


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    notification = _get_own_notification(db, current_user, notification_id)
    db.delete(notification)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/cron/generate-alerts")
def run_alert_generation(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> dict:
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    created = generate_exam_reminders(db, window_hours=settings.exam_reminder_window_hours)
    db.commit()
    return {"success": True, "message": "Exam reminders generated", "created": created}


def _extract_ws_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token

    auth_header = websocket.headers.get("authorization")
    if not auth_header:
        return None
    scheme, _, value = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


@router.websocket("/notifications/ws")
async def notifications_websocket(
    websocket: WebSocket,
    db: Session = Depends(get_db),
) -> None:
    token = _extract_ws_token(websocket)
    if not token:
        await websocket.close(code=1008)
        return

    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
    except JWTError:
        await websocket.close(code=1008)
        return

    if not user_id:
        await websocket.close(code=1008)
        return

    user = db.get(User, user_id)

    if user is None or not user.is_active:
        await websocket.close(code=1008)
        return

    viewer = viewer_for_user(db, user)
    await realtime_hub.connect(viewer, websocket)
    try:
        await websocket.send_json({"event": "connected", "user_id": user.id})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await realtime_hub.disconnect(user.id, websocket)

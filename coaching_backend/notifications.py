import logging
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from motor.motor_asyncio import AsyncIOMotorDatabase
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email as SGEmail
from sendgrid.helpers.mail import Mail
from starlette.concurrency import run_in_threadpool
from twilio.rest import Client as TwilioClient

from .config import Settings
from .models import NotificationLogRecord, NotificationPayload, ParentNotificationRecord, Priority
from .utils import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)


def normalize_phone_number(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    value = phone.strip().replace(" ", "")
    if value.startswith("+900"):
        return "+90" + value[4:]
    if value.startswith("0") and len(value) == 11:
        return "+90" + value[1:]
    if value.startswith("00"):
        return "+" + value[2:]
    return value


async def log_notification(
    db: AsyncIOMotorDatabase, event_type: str, channel: str, message: str, recipient: str, status: str
):
    log = NotificationLogRecord(
        event_type=event_type,
        channel=channel,
        message=message,
        recipient=recipient or "",
        status=status,
    )
    await db.notification_logs.insert_one(log.model_dump())


def _send_sms(settings: Settings, to_number: str, body: str):
    client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
    client.messages.create(body=body, from_=normalize_phone_number(settings.twilio_phone_number), to=to_number)


def get_sender_identity(settings: Settings) -> SGEmail:
    if settings.sender_name:
        return SGEmail(settings.sender_email or "", settings.sender_name)
    return SGEmail(settings.sender_email or "")


def _send_email(settings: Settings, to_email: str, subject: str, body: str):
    message = Mail(from_email=get_sender_identity(settings), to_emails=[to_email], subject=subject, html_content=f"<p>{escape(body)}</p>")
    SendGridAPIClient(settings.sendgrid_api_key).send(message)


async def deliver_sms(db: AsyncIOMotorDatabase, settings: Settings, event_type: str, phone: Optional[str], message: str):
    to_number = normalize_phone_number(phone)
    if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number and to_number):
        logger.warning("SMS notification skipped: missing Twilio configuration or phone number")
        await log_notification(db, event_type, "sms", message, to_number or "", "skipped")
        return
    try:
        await run_in_threadpool(_send_sms, settings, to_number, message)
        await log_notification(db, event_type, "sms", message, to_number, "sent")
    except Exception as exc:
        logger.error("SMS send failed: %s", exc)
        await log_notification(db, event_type, "sms", message, to_number, "failed")


async def deliver_email(
    db: AsyncIOMotorDatabase, settings: Settings, event_type: str, email: Optional[str], subject: str, message: str
):
    if not (settings.sendgrid_api_key and settings.sender_email and email):
        logger.warning("Email notification skipped: missing SendGrid configuration or address")
        await log_notification(db, event_type, "email", message, email or "", "skipped")
        return
    try:
        await run_in_threadpool(_send_email, settings, email, subject, message)
        await log_notification(db, event_type, "email", message, email, "sent")
    except Exception as exc:
        logger.error("Email send failed: %s", exc)
        await log_notification(db, event_type, "email", message, email, "failed")


async def notify_parents_of_student(
    db: AsyncIOMotorDatabase,
    settings: Settings,
    student_id: str,
    title: str,
    message: str,
    payload: NotificationPayload,
    priority: Priority = "medium",
    clock: Clock = utc_now,
) -> List[Dict[str, Any]]:
    """Store a notification for every active parent of the student and deliver it by their preferences."""
    parents = await db.users.find(
        {"role": "parent", "is_active": True, "children": student_id}, {"_id": 0}
    ).to_list(50)
    created = []
    for parent in parents:
        record = ParentNotificationRecord(
            parent_id=parent["id"],
            student_id=student_id,
            title=title,
            message=message,
            priority=priority,
            payload=payload,
            created_at=to_iso(clock()),
        )
        doc = record.model_dump()
        await db.parent_notifications.insert_one(doc)
        doc.pop("_id", None)
        created.append(doc)

        preferences = parent.get("notification_preferences") or {}
        if preferences.get("sms"):
            await deliver_sms(db, settings, payload.type, parent.get("phone"), f"{title}: {message}")
        if preferences.get("email", True):
            await deliver_email(db, settings, payload.type, parent.get("email"), title, message)
    return created

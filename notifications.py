"""
Outbound collaborators: OTP email, bill spreadsheet log, WhatsApp alerts.

OTP email is on the critical path of signup and password change, so
`send_otp_email` raises. The two bill side effects are best-effort and are
only ever called through `dispatch_bill_side_effects`, which never raises.
"""
import json
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict
from zoneinfo import ZoneInfo

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from config import settings
from logger import get_logger

logger = get_logger("notifications")

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
SHEETS_APPEND_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}:append"
SHEET_RANGE = "Sheet1!A:J"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
LOCAL_TZ = "Asia/Kolkata"
HTTP_TIMEOUT = 10


class NotificationError(Exception):
    pass


# ---------------------------------------------------------------------
# OTP email
# ---------------------------------------------------------------------

_OTP_SUBJECTS = {
    "verify": "Verify Your Email - Salon Management",
    "password": "Confirm Your Password Change - Salon Management",
}


def _otp_body(otp: str, purpose: str) -> str:
    intro = (
        "Thank you for signing up! Please use the following OTP to verify your email address:"
        if purpose == "verify"
        else "Use the following OTP to confirm your password change:"
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<p>{intro}</p>"
        f'<div style="background-color: #f5f5f5; padding: 20px; text-align: center;"><h1>{otp}</h1></div>'
        "<p>This OTP will expire in 10 minutes.</p>"
        "<p>If you didn't request this, please ignore this email.</p>"
        "</div>"
    )


def send_otp_email(to: str, otp: str, purpose: str = "verify") -> None:
    if not settings.smtp_configured:
        raise NotificationError("SMTP credentials not configured. Set SMTP_USER and SMTP_PASS.")

    msg = EmailMessage()
    msg["Subject"] = _OTP_SUBJECTS.get(purpose, _OTP_SUBJECTS["verify"])
    msg["From"] = settings.smtp_from
    msg["To"] = to
    msg.set_content(f"Your OTP is {otp}. It expires in 10 minutes.")
    msg.add_alternative(_otp_body(otp, purpose), subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as smtp:
            smtp.starttls()
            smtp.login(settings.smtp_user, settings.smtp_pass)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError(f"Failed to send verification email: {e}") from e
    logger.info("[NOTIFY] OTP email sent to %s", to)


# ---------------------------------------------------------------------
# Google Sheets
# ---------------------------------------------------------------------

def _sheets_credentials():
    if settings.google_credentials_json:
        info = json.loads(settings.google_credentials_json)
        return service_account.Credentials.from_service_account_info(info, scopes=[SHEETS_SCOPE])
    return service_account.Credentials.from_service_account_file(settings.google_key_file, scopes=[SHEETS_SCOPE])


def _local_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(LOCAL_TZ))


def bill_sheet_row(bill: Dict[str, Any]) -> list:
    created = _local_time(bill["createdAt"])
    return [
        created.strftime("%d/%m/%Y"),
        created.strftime("%I:%M:%S %p"),
        bill["clientName"],
        bill.get("customerMobile") or "",
        bill["attendantBy"],
        ", ".join(item["packageName"] for item in bill["items"]),
        bill["paymentMethod"],
        bill["totalAmount"],
        settings.salon_name,
        f"Bill-{bill['_id']}",
    ]


def append_bill_to_sheet(bill: Dict[str, Any]) -> None:
    if not settings.sheets_configured:
        logger.debug("[NOTIFY] Google Sheets not configured; skipping bill row")
        return
    session = AuthorizedSession(_sheets_credentials())
    url = SHEETS_APPEND_URL.format(sheet_id=settings.google_sheets_id, range=SHEET_RANGE)
    resp = session.post(
        url,
        params={"valueInputOption": "USER_ENTERED"},
        json={"values": [bill_sheet_row(bill)]},
        timeout=HTTP_TIMEOUT,
    )
    resp.raise_for_status()
    logger.info("[NOTIFY] Bill %s appended to sheet", bill["_id"])


# ---------------------------------------------------------------------
# WhatsApp (Twilio)
# ---------------------------------------------------------------------

def send_whatsapp_message(to: str, body: str) -> None:
    if not settings.twilio_configured:
        logger.warning("[NOTIFY] WhatsApp credentials not configured")
        return
    resp = requests.post(
        TWILIO_MESSAGES_URL.format(sid=settings.twilio_account_sid),
        data={"From": settings.twilio_whatsapp_number, "To": f"whatsapp:{to}", "Body": body},
        auth=(settings.twilio_account_sid, settings.twilio_auth_token),
        timeout=HTTP_TIMEOUT,
    )
    resp.raise_for_status()


def admin_bill_message(amount: float, client_name: str, when: datetime) -> str:
    stamp = _local_time(when).strftime("%d %b %Y, %I:%M %p")
    return (
        f"*{settings.salon_name} - Bill Processed*\n\n"
        f"Time: {stamp}\n"
        f"Client: {client_name}\n"
        f"Amount: ₹{amount:.2f}\n\n"
        "Bill has been successfully processed."
    )


def send_admin_bill_notification(bill: Dict[str, Any]) -> None:
    if not settings.admin_whatsapp_number:
        return
    send_whatsapp_message(
        settings.admin_whatsapp_number,
        admin_bill_message(bill["totalAmount"], bill["clientName"], bill["createdAt"]),
    )


def dispatch_bill_side_effects(bill: Dict[str, Any]) -> None:
    """Run after a bill commits. Failures are logged, never raised."""
    try:
        append_bill_to_sheet(bill)
    except Exception:
        logger.exception("[NOTIFY] Google Sheets integration failed for bill %s", bill.get("_id"))
    try:
        send_admin_bill_notification(bill)
    except Exception:
        logger.exception("[NOTIFY] WhatsApp notification failed for bill %s", bill.get("_id"))

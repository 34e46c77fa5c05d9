import os
import smtplib
import uuid
from datetime import datetime, timezone
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, MAIL_FROM, APP_NAME, SUPPORT_EMAIL, logger

# Jinja env
_templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)

EMAIL_BRAND_COLOR = os.getenv("EMAIL_BRAND_COLOR", "#0B5FFF")
EMAIL_BRAND_BG = os.getenv("EMAIL_BRAND_BG", "#F5F7FB")


def render_email(template_name: str, **context) -> str:
    base = {
        "app_name": APP_NAME,
        "brand_color": EMAIL_BRAND_COLOR,
        "brand_bg": EMAIL_BRAND_BG,
        "support_email": SUPPORT_EMAIL,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_addr: Optional[str] = None,
    reply_to: Optional[str] = None,
    attachments: Optional[list[dict]] = None,
) -> str:
    """Send one message over the SMTP relay.

    Returns the Message-ID on success and an empty string on failure.
    Attachments are dicts of {filename, content, mime_type}.
    """
    try:
        if not SMTP_HOST or not MAIL_FROM:
            logger.error("[email.smtp] SMTP not configured; cannot send email")
            return ""
        sender = (from_addr or MAIL_FROM).strip()
        envelope_from = sender.split("<")[-1].rstrip(">").strip() if "<" in sender else sender

        domain = envelope_from.split("@")[-1] if "@" in envelope_from else "localhost"
        message_id = f"<{uuid.uuid4()}@{domain}>"

        outer = MIMEMultipart("mixed")
        outer["Subject"] = subject
        outer["From"] = sender
        outer["To"] = to_addr
        outer["Message-ID"] = message_id
        outer["Date"] = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S +0000")
        if reply_to:
            outer["Reply-To"] = reply_to

        alt = MIMEMultipart("alternative")
        alt.attach(MIMEText(text or "", "plain", _charset="utf-8"))
        alt.attach(MIMEText(html or "", "html", _charset="utf-8"))
        outer.attach(alt)

        for att in (attachments or []):
            fname = str(att.get("filename") or "attachment")
            mime = str(att.get("mime_type") or "application/octet-stream").lower()
            main, sub = mime.split("/", 1) if "/" in mime else ("application", "octet-stream")
            part = MIMEBase(main, sub)
            part.set_payload(att.get("content") or b"")
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", f'attachment; filename="{fname}"')
            outer.attach(part)

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(envelope_from, [to_addr], outer.as_string())
        return message_id
    except (smtplib.SMTPException, OSError) as ex:
        logger.exception(f"[email.smtp] send failed to {to_addr}: {ex}")
        return ""

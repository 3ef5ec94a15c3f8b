"""
Transactional email via Resend.

Currently sends one message: the "you have been granted CRM access" email
sent to staff members after their onboarding request is approved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

import resend
from markupsafe import escape

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "onboarding@resend.dev"


class EmailNotConfigured(Exception):
    """RESEND_API_KEY is missing."""


class EmailDeliveryError(Exception):
    pass


@dataclass
class PermissionsEmail:
    to: str
    staff_name: str
    salon_owner_name: str
    crm_link: str
    permissions: Mapping[str, Mapping[str, object]] | None = None
    salon_owner_email: str | None = None

    @property
    def subject(self) -> str:
        return f"Your CRM Access - {self.salon_owner_name}"


def _humanize(key: str) -> str:
    return (key[:1].upper() + key[1:]).replace("_", " ")


def _granted(permissions: Mapping[str, Mapping[str, object]] | None) -> list[str]:
    """Lines like ``Clients: Read, Create`` for each module with a granted action."""
    lines = []
    for module_key, flags in (permissions or {}).items():
        active = [_humanize(action) for action, enabled in (flags or {}).items() if enabled]
        if active:
            lines.append(f"{_humanize(module_key)}: {', '.join(active)}")
    return lines


def format_permissions_list(permissions: Mapping[str, Mapping[str, object]] | None) -> str:
    return "\n".join(f"• {line}" for line in _granted(permissions))


def _permission_items(permissions: Mapping[str, Mapping[str, object]] | None) -> str:
    lines = _granted(permissions) or ["No specific permissions assigned"]
    return "".join(f"<li>{escape(line)}</li>" for line in lines)


def render_html(message: PermissionsEmail) -> str:
    staff_name = escape(message.staff_name)
    owner_name = escape(message.salon_owner_name)
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>CRM Access</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: #f4f4f4; padding: 20px; border-radius: 5px;">
    <h2 style="color: #2c3e50; margin-top: 0;">Welcome to SalonFlow</h2>
    <p>Hello <strong>{staff_name}</strong>,</p>
    <p>You have been granted access to the CRM system by <strong>{owner_name}</strong>.</p>
    <div style="background-color: #ffffff; padding: 15px; border-radius: 5px; margin: 20px 0;">
      <h3 style="color: #2c3e50; margin-top: 0;">Your Permissions:</h3>
      <ul style="margin: 0; padding-left: 20px;">{_permission_items(message.permissions)}</ul>
    </div>
    <div style="text-align: center; margin: 30px 0;">
      <a href="{escape(message.crm_link)}"
         style="background-color: #22c55e; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">
        Access Your CRM
      </a>
    </div>
    <div style="background-color: #e8f5e9; padding: 15px; border-radius: 5px; margin: 20px 0;">
      <h3 style="color: #2c3e50; margin-top: 0;">Login Instructions:</h3>
      <ul style="margin: 0; padding-left: 20px;">
        <li>Use your email address: <strong>{escape(message.to)}</strong></li>
        <li>Use your password (you'll be prompted to change it on first login)</li>
        <li>The salon has been pre-selected for you and cannot be changed</li>
      </ul>
    </div>
    <p style="margin-top: 30px;">Best regards,<br><strong>{owner_name}</strong></p>
  </div>
</body>
</html>
""".strip()


def render_text(message: PermissionsEmail) -> str:
    permissions_list = format_permissions_list(message.permissions) or "• No specific permissions assigned"
    return f"""
Hello {message.staff_name},

You have been granted access to the CRM system by {message.salon_owner_name}.

Your Permissions:
{permissions_list}

Access Your CRM:
{message.crm_link}

Login Instructions:
- Use your email address: {message.to}
- Use your password (you'll be prompted to change it on first login)
- The salon has been pre-selected for you and cannot be changed

Best regards,
{message.salon_owner_name}
""".strip()


def build_payload(
    message: PermissionsEmail,
    *,
    from_email: str | None,
    redirect_to: str | None = None,
) -> dict:
    """Assemble the Resend request body.

    ``redirect_to`` reroutes the message (development, or the shared test
    sender which may only deliver to the account owner).
    """
    display_name = "".join(ch for ch in message.salon_owner_name if ch not in '<>"').strip()
    sender = f"{display_name} <{from_email or DEFAULT_SENDER}>"

    html_body = render_html(message)
    payload: dict = {
        "from": sender,
        "to": [message.to],
        "subject": message.subject,
        "html": html_body,
        "text": render_text(message),
    }

    if redirect_to:
        payload["to"] = [redirect_to]
        payload["subject"] = f"[DEV - Redirected from {message.to}] {message.subject}"
        payload["html"] = (
            '<div style="background: #ffe4e6; color: #881337; padding: 10px; margin-bottom: 20px; '
            'border: 1px solid #f43f5e; border-radius: 4px;">'
            f"<strong>DEV/TEST MODE:</strong> This email was originally sent to: {escape(message.to)}"
            "</div>" + html_body
        )

    if message.salon_owner_email:
        payload["reply_to"] = message.salon_owner_email

    return payload


def send_permissions_email(message: PermissionsEmail, config: Mapping[str, object]) -> dict:
    api_key = config.get("RESEND_API_KEY")
    if not api_key:
        logger.error("RESEND_API_KEY is not configured; permissions email to %s not sent", message.to)
        raise EmailNotConfigured("Email service not configured")

    from_email = config.get("RESEND_FROM_EMAIL") or None
    redirect_to = None
    if config.get("APP_ENV") == "development" or not from_email:
        redirect_to = config.get("DEV_EMAIL_RECIPIENT") or None
        if redirect_to:
            logger.info("[DEV/TEST MODE] Redirecting email from %s to %s", message.to, redirect_to)

    payload = build_payload(message, from_email=from_email, redirect_to=redirect_to)

    resend.api_key = api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        logger.error("Email send error to %s: %s", payload["to"], exc)
        raise EmailDeliveryError(f"Failed to send email: {exc}") from exc

    logger.info("Permissions email sent to %s", payload["to"])
    return response

"""Tests for the Resend-backed permissions email."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from salonflow.email_service import (EmailDeliveryError, EmailNotConfigured, PermissionsEmail, build_payload,
                                     format_permissions_list, render_html, render_text,
                                     send_permissions_email)

MESSAGE = PermissionsEmail(
    to="staff@example.com",
    staff_name="Sam Staff",
    salon_owner_name='Olivia "The Boss" <Owner>',
    salon_owner_email="owner@example.com",
    crm_link="https://crm.example.com",
    permissions={"clients": {"read": True, "create": True, "delete": False}, "deals": {"read": False}},
)

PRODUCTION = {
    "RESEND_API_KEY": "re_test",
    "RESEND_FROM_EMAIL": "team@salonflow.example",
    "APP_ENV": "production",
    "DEV_EMAIL_RECIPIENT": "dev@salonflow.test",
}


def test_format_permissions_list_skips_empty_modules() -> None:
    assert format_permissions_list(MESSAGE.permissions) == "• Clients: Read, Create"
    assert format_permissions_list(None) == ""


def test_text_body_without_permissions() -> None:
    message = PermissionsEmail(to="a@b.com", staff_name="A", salon_owner_name="B", crm_link="https://x")

    assert "• No specific permissions assigned" in render_text(message)


def test_html_body_lists_granted_permissions() -> None:
    html = render_html(MESSAGE)

    assert "<li>Clients: Read, Create</li>" in html
    assert "Deals" not in html


def test_html_body_without_permissions() -> None:
    message = PermissionsEmail(to="a@b.com", staff_name="A", salon_owner_name="B", crm_link="https://x")

    assert "<li>No specific permissions assigned</li>" in render_html(message)


def test_html_body_escapes_names() -> None:
    message = PermissionsEmail(
        to="a@b.com", staff_name="<script>alert(1)</script>", salon_owner_name=MESSAGE.salon_owner_name,
        crm_link="https://x",
    )

    html = render_html(message)

    assert "<script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "Olivia &#34;The Boss&#34; &lt;Owner&gt;" in html


def test_payload_sanitises_sender_and_sets_reply_to() -> None:
    payload = build_payload(MESSAGE, from_email="team@salonflow.example")

    assert payload["from"] == "Olivia The Boss Owner <team@salonflow.example>"
    assert payload["to"] == ["staff@example.com"]
    assert payload["subject"] == 'Your CRM Access - Olivia "The Boss" <Owner>'
    assert payload["reply_to"] == "owner@example.com"
    assert "https://crm.example.com" in payload["html"]


def test_payload_redirect_mode() -> None:
    payload = build_payload(MESSAGE, from_email=None, redirect_to="dev@salonflow.test")

    assert payload["from"].endswith("<onboarding@resend.dev>")
    assert payload["to"] == ["dev@salonflow.test"]
    assert payload["subject"].startswith("[DEV - Redirected from staff@example.com] ")
    assert payload["html"].startswith('<div style="background: #ffe4e6')


def test_send_requires_api_key() -> None:
    with pytest.raises(EmailNotConfigured):
        send_permissions_email(MESSAGE, {"RESEND_API_KEY": ""})


def test_send_in_production_goes_to_recipient() -> None:
    with patch("salonflow.email_service.resend.Emails.send", return_value={"id": "email_1"}) as mock_send:
        response = send_permissions_email(MESSAGE, PRODUCTION)

    assert response == {"id": "email_1"}
    assert mock_send.call_args.args[0]["to"] == ["staff@example.com"]


def test_send_in_development_redirects() -> None:
    with patch("salonflow.email_service.resend.Emails.send", return_value={"id": "email_2"}) as mock_send:
        send_permissions_email(MESSAGE, {**PRODUCTION, "APP_ENV": "development"})

    assert mock_send.call_args.args[0]["to"] == ["dev@salonflow.test"]


def test_send_wraps_provider_errors() -> None:
    with patch("salonflow.email_service.resend.Emails.send", side_effect=RuntimeError("rate limited")):
        with pytest.raises(EmailDeliveryError):
            send_permissions_email(MESSAGE, PRODUCTION)


ROUTE_PAYLOAD = {
    "email": "staff@example.com",
    "staffName": "Sam Staff",
    "salonOwnerName": "Olivia Owner",
    "salonOwnerEmail": "owner@example.com",
    "salonId": 1,
    "crmLink": "https://crm.example.com",
    "permissions": {"clients": {"read": True}},
}


def test_route_missing_fields(client, salon_owner) -> None:
    response = client.post(
        "/api/email/send-permissions-email", json={"email": "x@example.com"}, headers=salon_owner["headers"]
    )

    assert response.status_code == 400
    assert "staffName" in response.get_json()["message"]


def test_route_not_configured(client, salon_owner) -> None:
    response = client.post("/api/email/send-permissions-email", json=ROUTE_PAYLOAD, headers=salon_owner["headers"])

    assert response.status_code == 503
    assert response.get_json()["error"] == "service_unavailable"


def test_route_sends_email(app, client, salon_owner) -> None:
    app.config["RESEND_API_KEY"] = "re_test"

    with patch("salonflow.email_service.resend.Emails.send", return_value={"id": "email_3"}) as mock_send:
        response = client.post("/api/email/send-permissions-email", json=ROUTE_PAYLOAD, headers=salon_owner["headers"])

    assert response.status_code == 200
    assert response.get_json()["emailId"] == "email_3"
    sent = mock_send.call_args.args[0]
    assert "• Clients: Read" in sent["text"]
    assert sent["to"] == ["dev@salonflow.test"]


def test_route_delivery_failure(app, client, salon_owner) -> None:
    app.config["RESEND_API_KEY"] = "re_test"

    with patch("salonflow.email_service.resend.Emails.send", side_effect=RuntimeError("boom")):
        response = client.post("/api/email/send-permissions-email", json=ROUTE_PAYLOAD, headers=salon_owner["headers"])

    assert response.status_code == 500
    assert response.get_json()["error"] == "email_failed"


def test_route_requires_auth(client) -> None:
    assert client.post("/api/email/send-permissions-email", json=ROUTE_PAYLOAD).status_code == 401

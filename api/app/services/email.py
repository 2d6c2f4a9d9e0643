"""Email service using Resend for sending transactional emails."""

from __future__ import annotations

import logging
import os
from typing import Any

import resend

logger = logging.getLogger(__name__)

# Resend configuration from environment
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "noreply@quillpress.local")
BASE_URL = os.getenv("BASE_URL", "http://localhost")

SITE_NAME = "Quillpress"


def _init_resend() -> bool:
    """Initialize Resend API key. Returns True if configured."""
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured - email sending disabled")
        return False
    resend.api_key = RESEND_API_KEY
    return True


def _layout(title: str, greeting: str, body_html: str, action_url: str, action_label: str, footer: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1f2937; padding: 24px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{SITE_NAME}</h1>
    </div>

    <div style="background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px;">
        <p style="margin-top: 0;">{greeting}</p>

        {body_html}

        <div style="text-align: center; margin: 30px 0;">
            <a href="{action_url}"
               style="background: #2563eb; color: white; text-decoration: none; padding: 14px 28px; border-radius: 5px; font-weight: bold; display: inline-block;">
                {action_label}
            </a>
        </div>

        <p style="color: #666; font-size: 12px; word-break: break-all;">
            <a href="{action_url}" style="color: #2563eb;">{action_url}</a>
        </p>

        <hr style="border: none; border-top: 1px solid #ddd; margin: 25px 0;">

        <p style="color: #999; font-size: 12px; margin-bottom: 0;">{footer}</p>
    </div>
</body>
</html>
"""


def _send(to_email: str, subject: str, html_content: str, text_content: str, kind: str) -> dict[str, Any] | None:
    if not _init_resend():
        logger.info(f"Email sending disabled - would send {kind} to {to_email}")
        return None

    try:
        params: resend.Emails.SendParams = {
            "from": RESEND_FROM_EMAIL,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
            "text": text_content,
        }
        response = resend.Emails.send(params)
        logger.info(f"{kind} email sent to {to_email}, id: {response.get('id', 'unknown')}")
        return response
    except Exception as e:
        logger.error(f"Failed to send {kind} email to {to_email}: {e}")
        return None


def send_password_reset_email(
    to_email: str, token: str, expire_minutes: int, name: str | None = None
) -> dict[str, Any] | None:
    """
    Send password reset email to a user.

    Args:
        to_email: The recipient's email address
        token: The reset token (plain, not hashed)
        expire_minutes: Minutes until the token expires
        name: Optional name for personalization

    Returns:
        Resend API response if successful, None if email sending is disabled or fails
    """
    reset_url = f"{BASE_URL}/reset-password?token={token}&email={to_email}"
    greeting = f"Hi {name}!" if name else "Hi there!"

    html_content = _layout(
        title=f"Reset your {SITE_NAME} password",
        greeting=greeting,
        body_html=f"<p>We received a request to reset the password for your {SITE_NAME} account.</p>",
        action_url=reset_url,
        action_label="Reset Password",
        footer=(
            f"This link will expire in {expire_minutes} minutes.<br>"
            "If you didn't request a password reset, you can safely ignore this email."
        ),
    )
    text_content = f"""{greeting}

We received a request to reset the password for your {SITE_NAME} account.

Reset your password here:
{reset_url}

This link will expire in {expire_minutes} minutes.
If you didn't request a password reset, you can safely ignore this email.
"""
    return _send(to_email, f"Reset your {SITE_NAME} password", html_content, text_content, "Password reset")


def send_newsletter_verification_email(
    to_email: str, token: str, expire_minutes: int
) -> dict[str, Any] | None:
    """Send the double opt-in confirmation for a newsletter subscription."""
    verify_url = f"{BASE_URL}/newsletter/verify?token={token}&email={to_email}"

    html_content = _layout(
        title=f"Confirm your {SITE_NAME} newsletter subscription",
        greeting="Hi there!",
        body_html=f"<p>Please confirm that you want to receive the {SITE_NAME} newsletter.</p>",
        action_url=verify_url,
        action_label="Confirm Subscription",
        footer=(
            f"This link will expire in {expire_minutes} minutes.<br>"
            "If you didn't subscribe, you can safely ignore this email."
        ),
    )
    text_content = f"""Hi there!

Please confirm that you want to receive the {SITE_NAME} newsletter:
{verify_url}

This link will expire in {expire_minutes} minutes.
"""
    return _send(
        to_email, f"Confirm your {SITE_NAME} newsletter subscription", html_content, text_content,
        "Newsletter verification",
    )


def send_newsletter_unsubscribe_email(
    to_email: str, token: str, expire_minutes: int
) -> dict[str, Any] | None:
    """Send the confirmation link for leaving the newsletter."""
    unsubscribe_url = f"{BASE_URL}/newsletter/unsubscribe?token={token}&email={to_email}"

    html_content = _layout(
        title=f"Confirm unsubscription from {SITE_NAME}",
        greeting="Hi there!",
        body_html="<p>We received a request to unsubscribe this address from our newsletter.</p>",
        action_url=unsubscribe_url,
        action_label="Unsubscribe",
        footer=(
            f"This link will expire in {expire_minutes} minutes.<br>"
            "If you want to keep receiving the newsletter, ignore this email."
        ),
    )
    text_content = f"""Hi there!

We received a request to unsubscribe this address from our newsletter.
Confirm here:
{unsubscribe_url}

This link will expire in {expire_minutes} minutes.
"""
    return _send(
        to_email, f"Confirm unsubscription from {SITE_NAME}", html_content, text_content,
        "Newsletter unsubscription",
    )

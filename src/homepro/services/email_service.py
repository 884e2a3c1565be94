"""SendGrid email service for lifecycle notifications.

Sends short transactional emails to homeowners and contractors when a service
request or a work submission changes status. Uses asyncio.to_thread to wrap
the synchronous SendGrid client.
"""

import asyncio
import html
import logging

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration, read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from homepro.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.notification_from_email


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def format_currency(value) -> str:
    """Format a number as $X,XXX.XX."""
    try:
        return f"${float(value):,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def build_lifecycle_html(heading: str, lines: list[str], link: str | None = None) -> str:
    """Build a minimal HTML body: heading, one paragraph per line, optional button."""
    from homepro.app.config import get_settings
    frontend_url = get_settings().frontend_url.rstrip("/")

    paragraphs = "".join(
        f'<p style="margin: 0 0 12px 0; color: #4b5563; font-size: 15px;">{html.escape(line)}</p>'
        for line in lines
    )
    button = ""
    if link:
        href = html.escape(f"{frontend_url}{link}")
        button = (
            f'<p style="margin: 24px 0 0 0;"><a href="{href}" '
            'style="background: #111827; color: #ffffff; padding: 10px 18px; '
            'border-radius: 6px; text-decoration: none;">View details</a></p>'
        )

    return f"""<!DOCTYPE html>
<html>
<body style="margin: 0; padding: 24px; font-family: -apple-system, Helvetica, Arial, sans-serif; background: #f9fafb;">
    <div style="max-width: 560px; margin: 0 auto; background: #ffffff; padding: 24px; border-radius: 8px;">
        <h2 style="margin: 0 0 16px 0; color: #111827;">{html.escape(heading)}</h2>
        {paragraphs}
        {button}
    </div>
</body>
</html>
"""


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_lifecycle_email(to_email: str, subject: str, html_body: str) -> bool:
    """Send one lifecycle notification email.

    Returns:
        True on success, False on failure or when email is not configured.
    """
    api_key, from_email = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping email '%s' to %s", subject, to_email)
        return False

    try:
        mail = Mail(
            from_email=Email(from_email, "HomePro"),
            to_emails=To(to_email),
            subject=subject,
            html_content=HtmlContent(html_body),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Email '%s' sent to %s", subject, to_email)
        return result
    except Exception:
        logger.exception("Failed to send email '%s' to %s", subject, to_email)
        return False

"""SMTP mail: password reset links and e-mail verification codes."""
import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.config import settings

logger = logging.getLogger(__name__)


def _send_sync(recipients: list[str], subject: str, text: str, html: Optional[str]) -> None:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from
    msg["To"] = ", ".join(recipients)
    msg.attach(MIMEText(text, "plain", "utf-8"))
    if html:
        msg.attach(MIMEText(html, "html", "utf-8"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
        if settings.smtp_use_tls:
            server.starttls(context=ssl.create_default_context())
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.smtp_user or settings.smtp_from, recipients, msg.as_string())


async def send_mail(to: str | list[str], subject: str, text: str, html: Optional[str] = None) -> bool:
    """Send a mail in a worker thread; False when SMTP is unset or delivery fails."""
    recipients = [to] if isinstance(to, str) else list(to)
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set. Mail to %s skipped: %s", recipients, subject)
        return False
    try:
        await asyncio.to_thread(_send_sync, recipients, subject, text, html)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send mail to %s: %s", recipients, e)
        return False
    return True


async def send_password_reset(email: str, token: str) -> bool:
    link = f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}"
    text = (
        "Şifre sıfırlama talebiniz alındı.\n"
        f"Yeni şifrenizi belirlemek için bağlantıyı kullanın: {link}\n"
        "Bağlantı 1 saat geçerlidir."
    )
    html = (
        "<p>Şifre sıfırlama talebiniz alındı.</p>"
        f'<p><a href="{link}">Yeni şifre belirle</a></p>'
        "<p>Bağlantı 1 saat geçerlidir.</p>"
    )
    return await send_mail(email, f"{settings.app_name} - Şifre Sıfırlama", text, html)


async def send_verification_code(email: str, code: str) -> bool:
    text = f"E-posta doğrulama kodunuz: {code}\nKod 10 dakika geçerlidir."
    return await send_mail(email, f"{settings.app_name} - E-posta Doğrulama", text)

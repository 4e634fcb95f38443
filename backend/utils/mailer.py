"""
メール送信

パスワードリセットメールを aiosmtplib で送信する。
SMTPが未設定の場合は送信せず False を返す（開発環境向け）。
"""

import logging
from email.message import EmailMessage

import aiosmtplib

import config

logger = logging.getLogger(__name__)


async def send_reset_email(address: str, token: str, name: str) -> bool:
    """
    パスワードリセットメールを送信する

    Returns:
        bool: 送信できた場合True
    """
    if not config.SMTP_HOST or not config.SMTP_USER or not config.SMTP_PASSWORD:
        logger.warning(f"SMTP is not configured, reset email to {address} was not sent")
        return False

    reset_url = f"{config.APP_URL}/reset-password?token={token}"

    msg = EmailMessage()
    msg["From"] = config.SMTP_FROM or config.SMTP_USER
    msg["To"] = address
    msg["Subject"] = "Password reset request"
    msg.set_content(
        f"Hello {name},\n\n"
        "We received a request to reset your password.\n"
        f"Open the following link within one hour to choose a new password:\n{reset_url}\n\n"
        "If you did not request this, you can ignore this email.\n"
    )

    try:
        await aiosmtplib.send(
            msg,
            hostname=config.SMTP_HOST,
            port=config.SMTP_PORT,
            start_tls=True,
            username=config.SMTP_USER,
            password=config.SMTP_PASSWORD,
        )
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send reset email to {address}: {e}")
        return False

    logger.info(f"Reset email sent to {address}")
    return True

import logging
import smtplib
from email.message import EmailMessage

import config

logger = logging.getLogger(__name__)

OTP_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 500px; margin: auto; padding: 20px;">
  <h2 style="text-align: center;">Your OTP Code</h2>
  <p>Hi {name},</p>
  <p>You requested a one-time password. Use the code below to proceed:</p>
  <p style="font-size: 28px; font-weight: bold; letter-spacing: 4px; text-align: center;">{otp}</p>
  <p>This code will expire in <strong>{minutes} minutes</strong>. Please do not share it with anyone.</p>
  <p>If you didn't request this, you can safely ignore this message.</p>
</div>
"""


def send_email(to: str, subject: str, body_html: str) -> bool:
    if not config.SMTP_HOST:
        logger.warning("SMTP_HOST not set, email to %s (%s) was not sent", to, subject)
        return False
    message = EmailMessage()
    message["From"] = config.MAIL_FROM
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(body_html, subtype="html")
    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as smtp:
        smtp.starttls()
        if config.SMTP_USER:
            smtp.login(config.SMTP_USER, config.SMTP_PASSWORD or "")
        smtp.send_message(message)
    logger.info("Email sent to %s (%s)", to, subject)
    return True


def send_otp_email(email: str, user_name: str, otp: str) -> bool:
    html = OTP_TEMPLATE.format(name=user_name or "there", otp=otp, minutes=config.OTP_EXPIRE_MINUTES)
    return send_email(email, "Your OTP Code", html)

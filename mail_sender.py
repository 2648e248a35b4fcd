#!/usr/bin/env python3

#
# Copyright (C) 2023-2026 Xiaosong Zhai. All rights reserved.
#

import logging
import os
import smtplib
import ssl
from email.message import EmailMessage

logger = logging.getLogger(__name__)

SUBJECT = "The status of your submission download"

# SMTP relay settings
SMTP_HOST = os.environ.get('SMTP_HOST', 'smtp.mandrillapp.com')
SMTP_PORT = int(os.environ.get('SMTP_PORT', '587'))
SMTP_USERNAME = os.environ.get('SMTP_USERNAME', 'demo.mrjello.me')
MAIL_FROM = os.environ.get('MAIL_FROM', 'zxs@demo.mrjello.me')

SMTP_API_KEY_ENV = 'SMTP_API_KEY'


def success_content(object_details: dict) -> str:
    return ("Your submission has been downloaded\n"
            f"objectName: {object_details.get('name')}\n"
            f"contentType: {object_details.get('contentType')}\n"
            f"size: {object_details.get('size')}")


def failure_content(reason: str) -> str:
    return ("Your submission download failed.\n"
            f"Reason: {reason}")


def build_message(user_email: str, content: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = MAIL_FROM
    msg["To"] = user_email
    msg["Subject"] = SUBJECT
    msg.set_content(content)
    return msg


def send_mail(api_key, user_email: str, content: str) -> bool:
    """
    Send a plain-text status email through the SMTP relay.

    Args:
        api_key (str): Relay API key, used as the SMTP password.
        user_email (str): Single recipient.
        content (str): Message body.

    Returns:
        bool: True if the relay accepted the message, False otherwise
    """
    if not api_key:
        logger.error(f"{SMTP_API_KEY_ENV} is not set, cannot send mail to {user_email}")
        return False

    try:
        msg = build_message(user_email, content)
        ctx = ssl.create_default_context()
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as smtp:
            smtp.starttls(context=ctx)
            smtp.login(SMTP_USERNAME, api_key)
            smtp.send_message(msg)
        logger.info(f"Email message sent to {user_email}")
        return True
    except (smtplib.SMTPException, OSError, ValueError) as e:
        logger.error(f"Error sending mail to {user_email}: {str(e)}")
        return False

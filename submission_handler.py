#!/usr/bin/env python3

#
# Copyright (C) 2023-2026 Xiaosong Zhai. All rights reserved.
#

import base64
import binascii
import datetime
import json
import logging
import os
from typing import NamedTuple

import functions_framework
import httpx

from email_tracking import STATUS_FAILED, STATUS_SUCCESS, track_email_status
from gcs_storage import GCS_BUCKET_NAME, get_object_details, get_storage_client, load_gcs_credentials, upload_object
from mail_sender import SMTP_API_KEY_ENV, failure_content, send_mail, success_content

# Configure logging for Lambda / Cloud Functions
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

# Ephemeral storage for the downloaded submission
DOWNLOAD_DIR = os.environ.get('DOWNLOAD_DIR', '/tmp')
DOWNLOAD_TIMEOUT_SECONDS = float(os.environ.get('DOWNLOAD_TIMEOUT_SECONDS', '30'))

DOWNLOAD_SUCCESS = "Success"


class Notification(NamedTuple):
    submission_url: str
    user_email: str


def extract_file_name_from_url(file_url) -> str:
    """
    Use the last path segment of the URL as the file name.

    Args:
        file_url (str): Submission URL, may be None.

    Returns:
        str: The file name, or "" for an empty URL.
    """
    if not file_url:
        return ""
    return file_url.rstrip("/").split("/")[-1]


def _has_control_characters(value: str) -> bool:
    return any(ord(c) < 32 or ord(c) == 127 for c in value)


def parse_notification(message) -> Notification:
    """
    Decode a notification message into its URL and recipient.

    Args:
        message (str | bytes | dict): JSON text or an already decoded mapping.

    Returns:
        Notification: The submission URL and user email.
    """
    payload = message if isinstance(message, dict) else json.loads(message)
    if not isinstance(payload, dict):
        raise ValueError(f"Notification payload must be a JSON object, got {type(payload).__name__}")

    fields = {}
    for key in ("submissionUrl", "userEmail"):
        value = payload.get(key)
        if not isinstance(value, str):
            raise ValueError(f"Notification payload is missing '{key}'")
        if _has_control_characters(value):
            raise ValueError(f"Notification field '{key}' contains control characters")
        fields[key] = value

    return Notification(submission_url=fields["submissionUrl"], user_email=fields["userEmail"])


def notification_from_sns_event(event: dict) -> Notification:
    records = event.get("Records") or []
    if not records:
        raise ValueError("SNS event contains no records")
    if len(records) > 1:
        logger.warning(f"SNS event contains {len(records)} records, only the first is processed")

    return parse_notification(records[0]["Sns"]["Message"])


def notification_from_cloud_event(cloud_event) -> Notification:
    """
    Extract the notification from a CloudEvent.

    Pub/Sub deliveries wrap the JSON in data.message.data as base64; any other
    event is expected to carry the JSON object directly as its data.
    """
    data = cloud_event.data
    if isinstance(data, dict) and isinstance(data.get("message"), dict) and "data" in data["message"]:
        try:
            decoded = base64.b64decode(data["message"]["data"], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"Could not decode Pub/Sub message data: {e}") from e
        return parse_notification(decoded)

    if data is None:
        raise ValueError("CloudEvent carries no data")
    return parse_notification(data)


def download_file(submission_url: str, file_name: str) -> str:
    """
    Stream the submission into DOWNLOAD_DIR.

    Args:
        submission_url (str): URL to fetch.
        file_name (str): Local name for the file.

    Returns:
        str: Path of the downloaded file.
    """
    if not file_name or file_name in (".", "..") or _has_control_characters(file_name):
        raise ValueError(f"Could not derive a file name from URL '{submission_url}'")

    os.makedirs(DOWNLOAD_DIR, exist_ok=True)
    local_path = os.path.join(DOWNLOAD_DIR, file_name)

    try:
        with httpx.Client(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
            with client.stream("GET", submission_url) as response:
                response.raise_for_status()
                with open(local_path, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
    except Exception:
        # drop partial downloads
        _remove_local_file(local_path)
        raise

    logger.info(f"Downloaded file: {local_path}")
    return local_path


def _remove_local_file(local_path: str) -> None:
    try:
        os.remove(local_path)
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as e:
        logger.warning(f"Could not remove temporary file {local_path}: {str(e)}")


def process_submission(submission_url: str, user_email: str, file_name: str) -> dict:
    """
    Run the download, upload, notify and track pipeline for one submission.

    Any failure before the status email switches to the failure branch: the
    user is told why and a "failed" record is written. On the success branch
    the record reflects whether the status email went out.

    Args:
        submission_url (str): URL of the submitted file.
        user_email (str): Recipient of the status email.
        file_name (str): Name used locally and for the uploaded object.

    Returns:
        dict: Processing results
    """
    start_time = datetime.datetime.now()
    results = {
        "user_email": user_email,
        "file_name": file_name,
        "download_status": None,
        "uploaded": False,
        "object_details": {},
        "email_sent": False,
        "status": None,
        "tracking_id": None,
        "start_time": start_time.isoformat(),
    }

    failure_reason = None
    local_path = None

    try:
        try:
            local_path = download_file(submission_url, file_name)
            results["download_status"] = DOWNLOAD_SUCCESS
        except Exception as e:
            failure_reason = str(e) or type(e).__name__
            results["download_status"] = failure_reason
            logger.error(f"Error downloading file from {submission_url}: {failure_reason}")

        if failure_reason is None:
            try:
                credentials = load_gcs_credentials()
                client = get_storage_client(credentials)
                upload_object(client, GCS_BUCKET_NAME, file_name, local_path)
                results["uploaded"] = True
                results["object_details"] = get_object_details(client, GCS_BUCKET_NAME, file_name)
            except Exception as e:
                failure_reason = f"Upload to bucket '{GCS_BUCKET_NAME}' failed: {str(e) or type(e).__name__}"
                logger.error(failure_reason)
    finally:
        if local_path:
            _remove_local_file(local_path)

    api_key = os.environ.get(SMTP_API_KEY_ENV)
    if failure_reason is None:
        email_sent = send_mail(api_key, user_email, success_content(results["object_details"]))
        status = STATUS_SUCCESS if email_sent else STATUS_FAILED
        logger.info(f"Success mail to {user_email} sent: {email_sent}")
    else:
        email_sent = send_mail(api_key, user_email, failure_content(failure_reason))
        status = STATUS_FAILED
        logger.info(f"Failure mail to {user_email} sent: {email_sent}")

    item = track_email_status(user_email, status)

    results["email_sent"] = email_sent
    results["status"] = status
    results["tracking_id"] = item["emailId"] if item else None

    end_time = datetime.datetime.now()
    results["end_time"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(f"Submission processing completed for {user_email}. Status: {status}")
    return results


def handle_submission(notification: Notification) -> dict:
    logger.info(f"submissionUrl: {notification.submission_url}")
    logger.info(f"userEmail: {notification.user_email}")

    file_name = extract_file_name_from_url(notification.submission_url)
    logger.info(f"fileName: {file_name}")

    return process_submission(notification.submission_url, notification.user_email, file_name)


def lambda_handler(event, context):
    """
    AWS Lambda entry point for SNS-delivered submission notifications.

    Args:
        event (dict): SNS event.
        context: Lambda context object.

    Returns:
        dict: statusCode and a JSON body with the processing results
    """
    logger.info("Received SNS event")
    try:
        notification = notification_from_sns_event(event)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(f"Error handling SNS event: {str(e)}")
        return {
            'statusCode': 400,
            'body': json.dumps({'error': str(e)})
        }

    results = handle_submission(notification)
    return {
        'statusCode': 200,
        'body': json.dumps(results)
    }


@functions_framework.cloud_event
def submission_event_handler(cloud_event):
    """
    Cloud Function entry point for Pub/Sub-delivered submission notifications.

    Args:
        cloud_event: CloudEvent wrapping the Pub/Sub message.

    Returns:
        dict: Processing results
    """
    logger.info(f"Received CloudEvent {cloud_event['id']} from {cloud_event['source']}")
    try:
        notification = notification_from_cloud_event(cloud_event)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(f"Error handling CloudEvent: {str(e)}")
        return {
            "status": "error",
            "message": str(e)
        }

    return handle_submission(notification)

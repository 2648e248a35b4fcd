#!/usr/bin/env python3

#
# Copyright (C) 2023-2026 Xiaosong Zhai. All rights reserved.
#

import base64
import binascii
import json
import logging
import os

from google.cloud import storage
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

# Project and bucket that receive the re-uploaded submissions
GCP_PROJECT_ID = os.environ.get('GCP_PROJECT_ID', 'csye6225-demo-406000')
GCS_BUCKET_NAME = os.environ.get('GCS_BUCKET_NAME', 'csye6225-demo-bucket')

GCP_CREDENTIALS_ENV = 'GCP_CREDENTIALS_SECRET'
GCP_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


def load_gcs_credentials(secret=None) -> service_account.Credentials:
    """
    Build service account credentials from the base64 encoded secret.

    Args:
        secret (str): Base64 encoded service account JSON. Read from
            GCP_CREDENTIALS_SECRET when omitted.

    Returns:
        service_account.Credentials: Credentials scoped for Cloud Storage.
    """
    if secret is None:
        secret = os.environ.get(GCP_CREDENTIALS_ENV)
    if not secret:
        raise RuntimeError(f"{GCP_CREDENTIALS_ENV} must be set")

    try:
        decoded = base64.b64decode(secret, validate=True).decode("utf-8")
        info = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Could not decode {GCP_CREDENTIALS_ENV}: {e}") from e

    credentials = service_account.Credentials.from_service_account_info(info, scopes=GCP_SCOPES)
    logger.info(f"Loaded credentials for service account '{info.get('client_email')}'")
    return credentials


def get_storage_client(credentials) -> storage.Client:
    return storage.Client(project=GCP_PROJECT_ID, credentials=credentials)


def upload_object(client: storage.Client, bucket_name: str, object_name: str, file_path: str) -> storage.Blob:
    """
    Upload a local file, refusing to clobber concurrent writes.

    A new object is written with a does-not-exist precondition
    (generation 0); an existing object is overwritten only if its
    generation is still the one we just read.

    Args:
        client (storage.Client): Authenticated storage client.
        bucket_name (str): Destination bucket.
        object_name (str): Destination object name.
        file_path (str): Local file to upload.

    Returns:
        storage.Blob: The uploaded blob.
    """
    bucket = client.bucket(bucket_name)
    existing = bucket.get_blob(object_name)

    if existing is None:
        generation_match = 0
    else:
        generation_match = existing.generation
        logger.info(f"Object '{object_name}' already exists in bucket '{bucket_name}' "
                    f"(generation {generation_match}), overwriting with precondition")

    blob = bucket.blob(object_name)
    blob.upload_from_filename(file_path, if_generation_match=generation_match)
    logger.info(f"File {file_path} uploaded to bucket '{bucket_name}' as '{object_name}'")
    return blob


def get_object_details(client: storage.Client, bucket_name: str, object_name: str) -> dict:
    """
    Read name, content type and size of an uploaded object.

    Returns:
        dict: {"name", "contentType", "size"} as strings, or {} if the object is missing.
    """
    blob = client.bucket(bucket_name).get_blob(object_name)
    if blob is None:
        logger.warning(f"No such object '{object_name}' in bucket '{bucket_name}'")
        return {}

    return {
        "name": blob.name,
        "contentType": str(blob.content_type),
        "size": str(blob.size),
    }

#!/usr/bin/env python3

#
# Copyright (C) 2023-2026 Xiaosong Zhai. All rights reserved.
#

import datetime
import logging
import os
import uuid

import boto3
import pytz
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

DYNAMODB_TABLE = os.environ.get('DYNAMODB_TABLE', 'emailTrackingTable')

# Create the tracking table on first use when it does not exist
CREATE_TRACKING_TABLE = os.environ.get('CREATE_TRACKING_TABLE', 'true').lower() in ('1', 'true', 'yes')

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'
VALID_STATUSES = (STATUS_SUCCESS, STATUS_FAILED)


def ensure_tracking_table(dynamodb, table_name: str):
    """
    Return the tracking table, creating it if it is missing.

    Args:
        dynamodb: boto3 DynamoDB service resource.
        table_name (str): Name of the tracking table.

    Returns:
        The DynamoDB Table resource.
    """
    table = dynamodb.Table(table_name)
    if not CREATE_TRACKING_TABLE:
        return table

    try:
        table.load()
        return table
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') != 'ResourceNotFoundException':
            raise

    logger.info(f"Tracking table '{table_name}' not found, creating it")
    table = dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{'AttributeName': 'emailId', 'KeyType': 'HASH'}],
        AttributeDefinitions=[{'AttributeName': 'emailId', 'AttributeType': 'S'}],
        ProvisionedThroughput={'ReadCapacityUnits': 1, 'WriteCapacityUnits': 1},
    )
    table.wait_until_exists()
    logger.info(f"Created tracking table '{table_name}'")
    return table


def build_tracking_item(user_email: str, status: str, now=None) -> dict:
    if status not in VALID_STATUSES:
        raise ValueError(f"Invalid tracking status: {status}")

    if now is None:
        now = datetime.datetime.now(pytz.utc)
    timestamp = now.astimezone(pytz.utc).isoformat().replace('+00:00', 'Z')

    return {
        'emailId': str(uuid.uuid4()),
        'email': user_email,
        'status': status,
        'timeStamp': timestamp,
    }


def track_email_status(user_email: str, status: str):
    """
    Append one outcome record to the tracking table.

    Records are never updated; replaying an event writes another row.

    Args:
        user_email (str): Recipient of the status email.
        status (str): "success" or "failed".

    Returns:
        dict: The stored item, or None if DynamoDB rejected the write.
    """
    item = build_tracking_item(user_email, status)
    try:
        dynamodb = boto3.resource('dynamodb')
        table = ensure_tracking_table(dynamodb, DYNAMODB_TABLE)
        table.put_item(Item=item)
        logger.info(f"Tracking table '{DYNAMODB_TABLE}' updated: {item['emailId']} {user_email} {status}")
        return item
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error writing tracking record for {user_email}: {str(e)}")
        return None

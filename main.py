#!/usr/bin/env python3

#
# Copyright (C) 2023-2026 Xiaosong Zhai. All rights reserved.
#

# Import the function handlers from submission_handler
from submission_handler import lambda_handler, submission_event_handler

# These are the entry points the function runtimes use:
# Lambda (SNS trigger) -> main.lambda_handler
# Cloud Functions (Pub/Sub trigger) -> submission_event_handler
# The actual implementation is in submission_handler.py

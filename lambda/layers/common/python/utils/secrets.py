"""
AWS Secrets Manager Utilities
=============================

Cached secret retrieval to minimize API calls and latency.
Secrets are cached in Lambda memory between invocations. An environment
variable with the same name as a secret key takes precedence, which is
how local runs supply credentials.
"""

import json
import os
from typing import Any
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from aws_lambda_powertools import Logger

logger = Logger()

# Secret name in AWS Secrets Manager
SECRET_NAME = os.environ.get("SECRETS_NAME", "task-matcher-secrets")

# Cached secrets client
_secrets_client = None


def _get_secrets_client():
    """Get or create cached Secrets Manager client."""
    global _secrets_client
    if _secrets_client is None:
        _secrets_client = boto3.client("secretsmanager")
    return _secrets_client


@lru_cache(maxsize=1)
def get_all_secrets() -> dict[str, Any]:
    """
    Retrieve all secrets from AWS Secrets Manager.

    Cached using lru_cache to avoid repeated API calls within
    the same execution context.

    Returns:
        Dictionary containing all secrets

    Raises:
        ClientError: If secret retrieval fails
    """
    client = _get_secrets_client()

    try:
        response = client.get_secret_value(SecretId=SECRET_NAME)
        secrets = json.loads(response["SecretString"])
        logger.info("Successfully retrieved secrets from Secrets Manager")
        return secrets
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.error(f"Failed to retrieve secrets: {error_code}")
        raise


def get_secret(key: str, default: Any = None) -> Any:
    """
    Get a specific secret value by key.

    Environment variables win over Secrets Manager. When neither
    source has the key (or Secrets Manager is unreachable and a
    default was given), the default is returned.

    Args:
        key: Secret key name
        default: Default value if key not found

    Returns:
        Secret value or default
    """
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    try:
        secrets = get_all_secrets()
    except (ClientError, BotoCoreError):
        if default is not None:
            logger.warning(f"Secrets Manager unavailable, using default for {key}")
            return default
        raise
    return secrets.get(key, default)

"""
CloudFormation custom resource handler that issues SES SMTP credentials.

Invoked through the CDK custom resource provider framework:
- Create / Update: creates an access key for the IAM user, derives the SES
  SMTP password from it and stores {"username", "password"} in the secret.
  The access key id becomes the physical resource id, so an update that
  issues a new key makes CloudFormation delete the old one.
- Delete: deletes the access key named by the physical resource id.
"""
import base64
import hashlib
import hmac
import json

import boto3
from botocore.exceptions import ClientError

# Constants of the SES SMTP password derivation.
SMTP_DATE = "11111111"
SMTP_SERVICE = "ses"
SMTP_TERMINAL = "aws4_request"
SMTP_MESSAGE = "SendRawEmail"
SMTP_VERSION = 0x04

# A failed create leaves a physical id that is not an access key id.
MISSING_KEY_ERRORS = ("NoSuchEntity", "ValidationError")


def _sign(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def derive_smtp_password(secret_access_key: str, region: str) -> str:
    """Derives the SES SMTP password for an IAM secret access key in a region."""
    signature = _sign(f"AWS4{secret_access_key}".encode("utf-8"), SMTP_DATE)
    for part in (region, SMTP_SERVICE, SMTP_TERMINAL, SMTP_MESSAGE):
        signature = _sign(signature, part)
    return base64.b64encode(bytes([SMTP_VERSION]) + signature).decode("utf-8")


def handler(event, context):
    request_type = event["RequestType"]
    print(f"SMTP credentials request: {request_type}")

    if request_type in ("Create", "Update"):
        return create_credentials(event["ResourceProperties"])
    if request_type == "Delete":
        return delete_credentials(event["ResourceProperties"], event["PhysicalResourceId"])

    raise ValueError(f"Unsupported request type: {request_type}")


def create_credentials(properties: dict) -> dict:
    user_name = properties["UserName"]
    secret_arn = properties["SecretArn"]
    region = properties["Region"]

    iam_client = boto3.client("iam")
    secrets_client = boto3.client("secretsmanager")

    access_key = iam_client.create_access_key(UserName=user_name)["AccessKey"]
    access_key_id = access_key["AccessKeyId"]

    try:
        secrets_client.put_secret_value(
            SecretId=secret_arn,
            SecretString=json.dumps({
                "username": access_key_id,
                "password": derive_smtp_password(access_key["SecretAccessKey"], region)
            })
        )
    except ClientError as e:
        print(f"Error storing SMTP credentials: {e.response['Error']['Message']}")
        iam_client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)
        raise

    print(f"Issued SMTP credentials for user {user_name}: {access_key_id}")
    return {"PhysicalResourceId": access_key_id, "Data": {"AccessKeyId": access_key_id}}


def delete_credentials(properties: dict, access_key_id: str) -> dict:
    user_name = properties["UserName"]
    iam_client = boto3.client("iam")
    try:
        iam_client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)
    except ClientError as e:
        if e.response["Error"]["Code"] not in MISSING_KEY_ERRORS:
            raise
        print(f"Access key {access_key_id} already gone for user {user_name}")

    return {"PhysicalResourceId": access_key_id}

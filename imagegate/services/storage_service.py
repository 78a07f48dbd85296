"""Blob storage for asset bytes.

With ``ASSET_BLOB_BACKEND = "database"`` bytes stay in the asset row and
these helpers are not called. With ``"s3"`` they hold the bytes under the
asset's storage key.
"""
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from flask import current_app


def uses_s3():
    return current_app.config["ASSET_BLOB_BACKEND"] == "s3"


def storage_key_for(asset_id):
    return f"assets/{asset_id}"


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=current_app.config["S3_ENDPOINT_URL"] or None,
        aws_access_key_id=current_app.config["S3_ACCESS_KEY"] or None,
        aws_secret_access_key=current_app.config["S3_SECRET_KEY"] or None,
        region_name=current_app.config["S3_REGION"],
        config=BotoConfig(
            signature_version="s3v4",
            connect_timeout=current_app.config["S3_CONNECT_TIMEOUT"],
            read_timeout=current_app.config["S3_READ_TIMEOUT"],
            retries={"max_attempts": 2},
        ),
    )


def upload(storage_key, data, content_type):
    """Upload bytes to S3 as a private object."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    client.put_object(
        Bucket=bucket,
        Key=storage_key,
        Body=data,
        ContentType=content_type,
        ACL="private",
    )


def download(storage_key):
    """Download object bytes from S3."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    response = client.get_object(Bucket=bucket, Key=storage_key)
    return response["Body"].read()


def delete(storage_key):
    """Delete an object from S3. Missing objects are not an error."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    try:
        client.delete_object(Bucket=bucket, Key=storage_key)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        if code not in ("NoSuchKey", "404"):
            raise

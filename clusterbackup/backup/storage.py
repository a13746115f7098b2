"""
Remote publisher for the final backup bundle.

Uploads the bundle to AWS S3 under ``{key_prefix}{filename}``. The bucket is
checked before any artifact is produced so a missing or misconfigured
destination fails the run early.
"""

import logging
import os
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import PublishError


logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 100 * 1024 * 1024
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024


def _error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', 'Unknown')


class S3Publisher:
    """Handler for uploading backup bundles to AWS S3."""

    def __init__(
        self,
        bucket_name: str,
        region: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        key_prefix: str = ''
    ):
        """
        Initialize S3 publisher.

        Args:
            bucket_name: S3 bucket name
            region: AWS region
            access_key: AWS access key ID; default credential chain when None
            secret_key: AWS secret access key
            key_prefix: Prepended to the bundle filename to form the key
        """
        self.bucket_name = bucket_name
        self.region = region
        self.key_prefix = key_prefix

        logger.info(f"Creating S3 client (region: {region})")
        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region
            )
        except (BotoCoreError, ValueError) as e:
            raise PublishError(f"Failed to initialize S3 client: {e}") from e

    def verify_destination_ready(self):
        """
        Ensure the bucket exists and has server-side encryption configured.

        Raises:
            PublishError: If the bucket is missing, inaccessible or unencrypted
        """
        logger.info(f"Ensuring bucket exists and is correctly configured: {self.bucket_name}")
        try:
            self.s3_client.get_bucket_encryption(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in ('404', 'NoSuchBucket'):
                raise PublishError(f"Bucket does not exist: {self.bucket_name}") from e
            if error_code in ('403', 'AccessDenied'):
                raise PublishError(f"Access denied to bucket: {self.bucket_name}") from e
            if error_code == 'ServerSideEncryptionConfigurationNotFoundError':
                raise PublishError(f"Bucket has no encryption configured: {self.bucket_name}") from e
            raise PublishError(
                f"Bucket does not exist or incorrectly configured ({error_code}): {e}"
            ) from e
        except BotoCoreError as e:
            raise PublishError(f"Failed to connect to S3: {e}") from e

    def object_key(self, local_path: str) -> str:
        return f"{self.key_prefix}{os.path.basename(local_path)}"

    def upload(self, local_path: str) -> str:
        """
        Upload a bundle to S3.

        Args:
            local_path: Path to the local bundle

        Returns:
            S3 key of the uploaded object

        Raises:
            PublishError: If the file is missing or the upload fails
        """
        if not os.path.exists(local_path):
            raise PublishError(f"Local file not found: {local_path}")

        s3_key = self.object_key(local_path)
        logger.info(f"Uploading {local_path} to s3://{self.bucket_name}/{s3_key}")

        try:
            file_size = os.path.getsize(local_path)
            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(local_path, s3_key)
            else:
                self._simple_upload(local_path, s3_key)
        except ClientError as e:
            raise PublishError(f"Upload to bucket failed ({_error_code(e)}): {e}") from e
        except (BotoCoreError, OSError) as e:
            raise PublishError(f"Upload to bucket failed: {e}") from e

        logger.info(f"Uploaded s3://{self.bucket_name}/{s3_key} ({file_size} bytes)")
        return s3_key

    def _simple_upload(self, local_path: str, s3_key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=f
            )

    def _multipart_upload(self, local_path: str, s3_key: str):
        """Upload a large file in MULTIPART_CHUNK_SIZE parts."""
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=s3_key
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=s3_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except Exception:
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(f"Failed to abort multipart upload {upload_id}: {abort_error}")
            raise

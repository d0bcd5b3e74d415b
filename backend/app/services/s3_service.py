# app/services/s3_service.py

import uuid
from datetime import datetime
from typing import BinaryIO, Optional

import boto3
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.logger import logger
from app.utils.helpers import safe_file_name


class S3Service:
    """
    Document storage on AWS S3.
    """

    def __init__(self):
        self.s3_client = boto3.client(
            's3',
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None
        )
        self.bucket = settings.S3_BUCKET_NAME
        self.prefix = settings.S3_UPLOAD_PREFIX.strip("/")

    def build_key(self, file_name: str) -> str:
        now = datetime.utcnow()
        return f"{self.prefix}/{now:%Y/%m}/{uuid.uuid4().hex}-{safe_file_name(file_name)}"

    def object_url(self, s3_key: str) -> str:
        return f"https://{self.bucket}.s3.{settings.AWS_REGION}.amazonaws.com/{s3_key}"

    def upload_fileobj(
        self,
        fileobj: BinaryIO,
        file_name: str,
        content_type: str = "application/octet-stream",
        size: int = 0,
    ) -> dict:
        """
        Upload a file and return its storage metadata
        (storage_key, file_url, file_name, mime_type, size).
        """
        s3_key = self.build_key(file_name)
        try:
            self.s3_client.upload_fileobj(
                fileobj,
                self.bucket,
                s3_key,
                ExtraArgs={'ContentType': content_type}
            )
            logger.info(f"Uploaded object: {s3_key} ({size} bytes)")
        except ClientError as e:
            logger.error(f"Failed to upload {file_name}: {str(e)}")
            raise

        return {
            "storage_key": s3_key,
            "file_url": self.object_url(s3_key),
            "file_name": file_name,
            "mime_type": content_type,
            "size": size,
        }

    def generate_download_url(
        self,
        s3_key: str,
        bucket: Optional[str] = None,
        expires_in: int = 3600
    ) -> str:
        """
        Generate pre-signed URL for GET operation (download).
        """
        try:
            url = self.s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': bucket or self.bucket,
                    'Key': s3_key
                },
                ExpiresIn=expires_in
            )

            logger.info(f"Generated download URL for: {s3_key}")
            return url

        except ClientError as e:
            logger.error(f"Failed to generate download URL: {str(e)}")
            raise

    def delete_object(self, s3_key: str, bucket: Optional[str] = None):
        try:
            self.s3_client.delete_object(Bucket=bucket or self.bucket, Key=s3_key)
            logger.info(f"Deleted object: {s3_key}")
        except ClientError as e:
            logger.error(f"Failed to delete object: {str(e)}")
            raise

    def check_bucket(self) -> tuple[str, str]:
        """Returns (status, detail). Status is 'ok' or 'error'."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
            return "ok", f"Bucket '{self.bucket}' accessible"
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            return "error", f"S3: {code}"


# Singleton instance
s3_service = S3Service()

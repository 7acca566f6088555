import json
import logging
import os

from minio import Minio
from minio.error import S3Error

from shared.config import settings

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    '.png': 'image/png',
    '.pdf': 'application/pdf',
}

class AssetStorage:
    """Publishes generated PNG/PDF files to a public-read MinIO bucket."""

    def __init__(self):
        self.bucket_name = settings.MINIO_BUCKET_NAME
        self.public_url = settings.MINIO_PUBLIC_URL.rstrip('/')

        logger.info("MinIO Configuration:")
        logger.info(f"MINIO_ENDPOINT: {settings.MINIO_ENDPOINT}")
        logger.info(f"MINIO_ACCESS_KEY: {settings.MINIO_ACCESS_KEY}")
        logger.info(f"MINIO_USE_SSL: {settings.MINIO_USE_SSL}")
        logger.info(f"MINIO_BUCKET_NAME: {self.bucket_name}")

        self.client = Minio(
            endpoint=settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL
        )
        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create it with a public read policy if it doesn't"""
        try:
            if self.client.bucket_exists(self.bucket_name):
                logger.info(f"Bucket {self.bucket_name} already exists")
                return

            logger.info(f"Creating bucket {self.bucket_name}...")
            self.client.make_bucket(self.bucket_name)
            policy = {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"AWS": ["*"]},
                        "Action": ["s3:GetObject"],
                        "Resource": [f"arn:aws:s3:::{self.bucket_name}/*"]
                    }
                ]
            }
            try:
                self.client.set_bucket_policy(self.bucket_name, json.dumps(policy))
            except S3Error as policy_error:
                logger.error(f"Failed to set bucket policy: {str(policy_error)}")
        except S3Error as e:
            logger.error(f"MinIO Error: {str(e)}")
            raise Exception(f"Failed to create/check bucket: {str(e)}")

    def object_url(self, object_name: str) -> str:
        return f"{self.public_url}/{self.bucket_name}/{object_name}"

    def upload_file(self, path: str, object_name: str) -> str:
        """Upload a local file and return its public URL."""
        content_type = CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), 'application/octet-stream')
        try:
            logger.info(f"Uploading {path} as {object_name}")
            self.client.fput_object(
                bucket_name=self.bucket_name,
                object_name=object_name,
                file_path=path,
                content_type=content_type
            )
        except S3Error as e:
            logger.error(f"MinIO Error during upload: {str(e)}")
            raise Exception(f"Failed to upload {object_name}: {str(e)}")
        return self.object_url(object_name)

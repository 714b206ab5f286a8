"""S3 storage for event cover images."""
import logging
import mimetypes
import uuid

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class S3AssetStore:
    """Stores binary assets in an S3 bucket under opaque keys."""

    def __init__(self, bucket_name: str, prefix: str = 'covers/'):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding the assets
            prefix: Key prefix for stored assets
        """
        self.bucket_name = bucket_name
        self.prefix = prefix
        self.s3 = boto3.client('s3')
        logger.info(f"Initialized S3AssetStore for bucket: {bucket_name}")

    def store_asset(self, data: bytes, content_type: str = 'application/octet-stream') -> str:
        """
        Store bytes under a fresh key.

        Keys are never reused, so a new cycle's asset is never released
        together with the previous cycle's copy of the same image.

        Args:
            data: Asset content
            content_type: MIME type recorded on the object

        Returns:
            Asset reference (the object key)
        """
        extension = mimetypes.guess_extension(content_type.split(';')[0].strip()) or ''
        key = f"{self.prefix}{uuid.uuid4().hex}{extension}"
        self.s3.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type
        )
        logger.debug(f"Stored asset {key} ({len(data)} bytes)")
        return key

    def release_asset(self, asset_ref: str) -> bool:
        """
        Delete a stored asset.

        Args:
            asset_ref: Reference returned by store_asset

        Returns:
            True if the delete request succeeded
        """
        try:
            self.s3.delete_object(Bucket=self.bucket_name, Key=asset_ref)
            return True
        except ClientError as e:
            logger.error(f"Error releasing asset {asset_ref}: {e}")
            return False

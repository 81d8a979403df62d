import asyncio
import logging

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


class R2Storage:
    def __init__(self, account_id: str, access_key: str, secret_key: str, bucket_name: str, client=None):
        self.bucket_name = bucket_name
        self.endpoint_url = f"https://{account_id}.r2.cloudflarestorage.com"

        self.s3_client = client or boto3.client(
            service_name="s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(signature_version="s3v4"),
            region_name="auto"
        )

    async def save(self, name: str, content: bytes, content_type: str) -> str:
        """
        Salva o anexo no bucket.
        Organiza em pastas por tipo baseado no content_type.
        """
        prefix = "others"
        if "image" in content_type: prefix = "images"
        elif "video" in content_type: prefix = "videos"
        elif "pdf" in content_type: prefix = "documents"

        key = f"chat_attachments/{prefix}/{name}"
        await asyncio.to_thread(self._upload, content, key, content_type)
        return f"{self.endpoint_url}/{self.bucket_name}/{key}"

    def _upload(self, body, key, content_type):
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=body,
            ContentType=content_type
        )
        logger.debug("Uploaded %s to bucket %s", key, self.bucket_name)

import logging
import uuid
import boto3
from botocore.client import Config
from botocore.exceptions import ClientError
from .config import Settings
from .store import safe_name
from ..vision.errors import ChartNotFoundError

logger = logging.getLogger(__name__)

class S3ChartStore:
    """Chart artifacts in an S3-compatible bucket; refs are object keys."""

    def __init__(self, settings: Settings, prefix: str = "charts/", client=None):
        self.bucket = settings.s3_bucket
        self.prefix = prefix
        self._settings = settings
        self._s3 = client

    def _client(self):
        if self._s3 is None:
            s = self._settings
            self._s3 = boto3.client(
                "s3",
                endpoint_url=s.s3_endpoint or None,
                aws_access_key_id=s.s3_access_key or None,
                aws_secret_access_key=s.s3_secret_key or None,
                region_name=s.s3_region,
                config=Config(signature_version="s3v4"),
            )
        return self._s3

    def put(self, data: bytes, name: str = "") -> str:
        key = f"{self.prefix}{safe_name(name)}_{uuid.uuid4().hex}.png"
        self._client().put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType="image/png",
        )
        return key

    def get(self, ref: str) -> bytes:
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=ref)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404", "NotFound"):
                raise ChartNotFoundError(f"Chart image not found: {ref}") from e
            raise
        return obj["Body"].read()

    def delete(self, ref: str) -> None:
        # S3 deletes are idempotent
        self._client().delete_object(Bucket=self.bucket, Key=ref)
        logger.debug("Deleted chart artifact s3://%s/%s", self.bucket, ref)

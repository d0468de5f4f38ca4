"""Amazon S3 upload via boto3."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..models import Directory
from .base import Deployer, DeployError, content_type_for, iter_files, join_remote

ClientFactory = Callable[[Dict[str, Any]], Any]


def _boto3_client(config: Dict[str, Any]) -> Any:
    try:
        import boto3
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "boto3 is required for S3 deployments. Install with `pip install multidir[deploy]`."
        ) from exc
    return boto3.client("s3", region_name=config.get("region"))


class S3Deployer(Deployer):
    """Puts every file into ``s3.bucket`` under ``s3.prefix``."""

    method = "s3"
    required_keys = ("bucket",)

    def __init__(self, *, client_factory: ClientFactory | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client_factory = client_factory or _boto3_client

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        client = self._client_factory(config)
        bucket = str(config["bucket"])
        prefix = str(config.get("prefix") or "")
        count = 0
        for path, relative in iter_files(build_path):
            key = join_remote(prefix, relative)
            try:
                client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=path.read_bytes(),
                    ContentType=content_type_for(path),
                )
            except Exception as exc:
                raise DeployError(f"S3 upload of {key} failed: {exc}") from exc
            count += 1
        self.logger.info("Uploaded %d object(s) to s3://%s", count, bucket)
        return f"s3://{bucket}/{prefix.strip('/')}"


__all__ = ["S3Deployer"]

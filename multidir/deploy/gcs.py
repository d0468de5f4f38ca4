"""Google Cloud Storage upload."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..models import Directory
from .base import Deployer, DeployError, content_type_for, iter_files, join_remote

ClientFactory = Callable[[Dict[str, Any]], Any]


def _storage_client(config: Dict[str, Any]) -> Any:
    try:
        from google.cloud import storage
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "google-cloud-storage is required for GCS deployments. "
            "Install with `pip install multidir[deploy]`."
        ) from exc
    key_file = config.get("key_file") or config.get("keyFilePath")
    if key_file:
        return storage.Client.from_service_account_json(str(key_file))
    return storage.Client(project=config.get("project"))


class GCSDeployer(Deployer):
    """Uploads every file into ``gcs.bucket`` under ``gcs.prefix``."""

    method = "gcs"
    required_keys = ("bucket",)

    def __init__(self, *, client_factory: ClientFactory | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._client_factory = client_factory or _storage_client

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        bucket_name = str(config["bucket"])
        bucket = self._client_factory(config).bucket(bucket_name)
        prefix = str(config.get("prefix") or "")
        count = 0
        for path, relative in iter_files(build_path):
            destination = join_remote(prefix, relative)
            try:
                bucket.blob(destination).upload_from_filename(
                    str(path), content_type=content_type_for(path)
                )
            except Exception as exc:
                raise DeployError(f"GCS upload of {destination} failed: {exc}") from exc
            count += 1
        self.logger.info("Uploaded %d object(s) to gs://%s", count, bucket_name)
        return f"gs://{bucket_name}/{prefix.strip('/')}"


__all__ = ["GCSDeployer"]

import json
import logging
import os
import tempfile
from typing import Optional

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage

from unified_calendar.errors import ConfigWriteFailure

logger = logging.getLogger(__name__)


def _get_blob(bucket_name: str, filename: str):
    """
    Returns the GCS blob object holding a mapping file.
    """
    client = storage.Client()
    bucket = client.bucket(bucket_name)
    return bucket.blob(os.path.basename(filename))


def load_mapping(path: str, bucket_name: Optional[str] = None) -> dict:
    """
    Loads a JSON mapping (property -> display name, property -> vendor).
    From the bucket when one is configured, otherwise from local disk.
    A mapping that does not exist yet is empty.
    """
    if bucket_name:
        blob = _get_blob(bucket_name, path)
        try:
            return json.loads(blob.download_as_text())
        except NotFound:
            logger.warning(f"No {blob.name} in bucket {bucket_name}, starting empty")
            return {}

    if not os.path.exists(path):
        logger.warning(f"No mapping file {path}, starting empty")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_mapping(path: str, data: dict, bucket_name: Optional[str] = None):
    """
    Saves a mapping as JSON, replacing the previous file in one step.
    Raises ConfigWriteFailure if it cannot be written.
    """
    payload = json.dumps(data, indent=2, ensure_ascii=False)

    if bucket_name:
        try:
            blob = _get_blob(bucket_name, path)
            blob.upload_from_string(payload, content_type="application/json")
        except GoogleAPIError as e:
            raise ConfigWriteFailure(f"Could not upload {path} to {bucket_name}: {e}") from e
        logger.info(f"Saved {path} to bucket {bucket_name}")
        return

    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise
    except OSError as e:
        raise ConfigWriteFailure(f"Could not write {path}: {e}") from e
    logger.info(f"Saved {path}")

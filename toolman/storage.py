"""
Durable JSON blobs for the cache and the offline queue.

Writes go to a temporary file in the same directory and are moved into place
with os.replace, so a crash mid-write leaves the previous blob intact.
Datetimes, decimals and UUIDs are encoded with DjangoJSONEncoder.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from django.core.serializers.json import DjangoJSONEncoder


def write_json(path, data: Any) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(data, fh, cls=DjangoJSONEncoder)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_json(path) -> Any:
    """
    Raises:
        FileNotFoundError: No blob yet
        ValueError: Blob is not valid JSON
    """
    with open(path, encoding='utf-8') as fh:
        return json.load(fh)

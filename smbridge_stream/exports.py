"""
Export payload preparation for entries that carry an extension sink.

S3Export: the envelope is staged as a file and replaced by an export task
    {"inputUrl": <path>, "bucket": <bucket>, "key": "<key>/<file name>"}
SiteWiseExport: the envelope becomes one property value entry
    {"entryId": ..., "propertyAlias": ..., "propertyValues": [...]}
"""

import json
import secrets
import string
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from smbridge_routing.errors import ExportPreparationError
from smbridge_routing.mapping import ExtensionSink, S3Export, SiteWiseExport

_NAME_ALPHABET = string.ascii_letters + string.digits


def _compact(data: dict) -> bytes:
    return json.dumps(data, separators=(',', ':')).encode('utf-8')


class ExportPreparer:
    """
    Callable handed to MessageBridge as its export_preparer.

    Example:
        preparer = ExportPreparer(Path("/tmp/sm-bridge"))
        bridge = MessageBridge(mapping, export_preparer=preparer)
    """

    def __init__(self, export_dir: Path, clock: Optional[Callable[[], float]] = None):
        self.export_dir = Path(export_dir)
        self.clock = clock or time.time

    def __call__(self, extension: ExtensionSink, payload: bytes) -> bytes:
        if isinstance(extension, S3Export):
            return self.prepare_s3(extension, payload)
        if isinstance(extension, SiteWiseExport):
            return self.prepare_sitewise(extension, payload)
        raise ExportPreparationError(f"Unsupported extension sink: {extension!r}")

    def prepare_s3(self, export: S3Export, payload: bytes) -> bytes:
        name = ''.join(secrets.choice(_NAME_ALPHABET) for _ in range(7)) + ".txt"
        path = self.export_dir / name
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        except OSError as e:
            raise ExportPreparationError(f"Unable to stage S3 export file: {e}") from e

        return _compact({
            'inputUrl': str(path.resolve()),
            'bucket': export.bucket,
            'key': f"{export.key}/{name}",
        })

    def prepare_sitewise(self, export: SiteWiseExport, payload: bytes) -> bytes:
        try:
            value = bytes(payload).decode('utf-8')
        except UnicodeDecodeError as e:
            raise ExportPreparationError("SiteWise export needs a UTF-8 payload") from e

        return _compact({
            'entryId': str(uuid.uuid4()),
            'propertyAlias': export.property_alias,
            'propertyValues': [{
                'value': {'stringValue': value},
                'timestamp': {'timeInSeconds': int(self.clock()), 'offsetInNanos': 0},
            }],
        })

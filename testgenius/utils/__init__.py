"""Utility modules."""
from testgenius.utils.json_utils import (
    delete_json_file,
    json_dump,
    json_load,
    read_json_file,
    write_json_file,
)
from testgenius.utils.paths import snapshot_path
from testgenius.utils.time_utils import epoch_millis, utc_now
from testgenius.utils.validation import read_upload_limited, validate_id

__all__ = [
    "delete_json_file",
    "json_dump",
    "json_load",
    "read_json_file",
    "write_json_file",
    "snapshot_path",
    "epoch_millis",
    "utc_now",
    "read_upload_limited",
    "validate_id",
]

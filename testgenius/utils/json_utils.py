"""JSON file utilities."""
import json
import os
import tempfile
from pathlib import Path


def json_dump(payload: object) -> str:
    """Serialize object to pretty JSON string."""
    return json.dumps(payload, ensure_ascii=False, indent=2)


def json_load(data: str) -> object:
    """Deserialize JSON string to object."""
    return json.loads(data)


def read_json_file(path: Path, default: object) -> object:
    """Read and parse JSON file, return default if not exists."""
    if not path.exists():
        return default
    return json_load(path.read_text(encoding="utf-8"))


def write_json_file(path: Path, payload: object) -> None:
    """Write object as JSON file, replacing any previous content atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(json_dump(payload))
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def delete_json_file(path: Path) -> bool:
    """Delete a JSON file. Returns True if something was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True

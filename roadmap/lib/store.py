"""
Document store for roadmap state.

Keys are relative paths in the project namespace ("project.json",
"epics/E1-auth/prd.md"). Structured documents are JSON, except keys ending in
.yaml/.yml which are YAML. Two adapters are provided:

  FileSystemStore - files under <project>/.roadmap/
  MemoryStore     - dict-backed, used by tests and dry runs

Reads validate against a named JSON Schema when one is given. Writes do not
validate here; callers run validate_before_write so the error names the
document they were building.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Protocol

import yaml

from roadmap.lib.constants import PROJECT_KEY, STATE_DIR
from roadmap.lib.validate import ValidationError, validate

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Underlying I/O failed."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{key}: {message}")


class Store(Protocol):
    """Operations every store adapter provides.

    Adapters may additionally offer create_exclusive(key, value) -> bool, an
    atomic create-if-absent used by the lock manager when available.
    """

    def read_structured(self, key: str, schema: Optional[str] = None) -> Optional[dict]: ...

    def write_structured(self, key: str, value: Any) -> None: ...

    def read_text(self, key: str) -> Optional[str]: ...

    def write_text(self, key: str, content: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def list(self, prefix: str) -> list[str]: ...

    def list_directories(self, prefix: str) -> list[str]: ...

    def ensure_directory(self, key: str) -> None: ...

    def is_initialized(self) -> bool: ...


def _is_yaml(key: str) -> bool:
    return key.endswith((".yaml", ".yml"))


def _normalize_key(key: str) -> str:
    """Reject keys that would escape the store namespace."""
    path = PurePosixPath(key)
    if path.is_absolute() or ".." in path.parts:
        raise StorageError(key, "key must be a relative path inside the store")
    return str(path) if str(path) != "." else ""


def dump_document(key: str, value: Any) -> str:
    """Serialize a structured document for the given key."""
    if _is_yaml(key):
        return yaml.safe_dump(value, sort_keys=False, default_flow_style=False)
    return json.dumps(value, indent=2) + "\n"


def parse_document(key: str, text: str, schema: Optional[str] = None) -> Any:
    """Parse and (optionally) schema-check a stored document.

    Raises:
        ValidationError: If the text does not parse or fails the schema
    """
    try:
        data = yaml.safe_load(text) if _is_yaml(key) else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(schema or key, f"Unparsable document {key}: {e}") from e

    if schema:
        validate(data, schema)
    return data


class FileSystemStore:
    """Store rooted at <project_dir>/.roadmap."""

    def __init__(self, project_dir: Path):
        self.project_dir = Path(project_dir)
        self.base = self.project_dir / STATE_DIR

    def __repr__(self) -> str:
        return f"FileSystemStore({self.base})"

    def _path(self, key: str) -> Path:
        return self.base / _normalize_key(key)

    def read_structured(self, key: str, schema: Optional[str] = None) -> Optional[dict]:
        text = self.read_text(key)
        if text is None:
            return None
        return parse_document(key, text, schema)

    def write_structured(self, key: str, value: Any) -> None:
        self.write_text(key, dump_document(key, value))

    def read_text(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(key, f"read failed: {e}") from e

    def write_text(self, key: str, content: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            raise StorageError(key, f"write failed: {e}") from e
        logger.debug(f"Wrote {key} ({len(content)} bytes)")

    def create_exclusive(self, key: str, value: Any) -> bool:
        """Create a structured document only if the key is free.

        Returns False when the key already exists. The content is written to a
        temp file first and hard-linked into place; link() fails if the target
        exists, so of two racing callers exactly one wins and nobody ever sees
        a half-written document.
        """
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        except OSError as e:
            raise StorageError(key, f"exclusive create failed: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(dump_document(key, value))
                f.flush()
                os.fsync(f.fileno())
            os.link(tmp_name, path)
        except FileExistsError:
            return False
        except OSError as e:
            raise StorageError(key, f"exclusive create failed: {e}") from e
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
        logger.debug(f"Created {key}")
        return True

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(key, f"delete failed: {e}") from e

    def list(self, prefix: str) -> list[str]:
        """Names of the files directly under a directory key."""
        path = self._path(prefix)
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_file())

    def list_directories(self, prefix: str) -> list[str]:
        """Names of the subdirectories directly under a directory key."""
        path = self._path(prefix)
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_dir())

    def ensure_directory(self, key: str) -> None:
        try:
            self._path(key).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(key, f"mkdir failed: {e}") from e

    def is_initialized(self) -> bool:
        return self.exists(PROJECT_KEY)


class MemoryStore:
    """Dict-backed store.

    Documents are kept serialized so reads go through the same parse and
    schema path as the filesystem store. There is no create_exclusive: lock
    acquisition against this store uses the plain read-then-write path.
    """

    def __init__(self, files: Optional[dict[str, str]] = None):
        self.files: dict[str, str] = {}
        self.directories: set[str] = set()
        for key, content in (files or {}).items():
            self.write_text(key, content)

    def __repr__(self) -> str:
        return f"MemoryStore({len(self.files)} documents)"

    def read_structured(self, key: str, schema: Optional[str] = None) -> Optional[dict]:
        text = self.read_text(key)
        if text is None:
            return None
        return parse_document(key, text, schema)

    def write_structured(self, key: str, value: Any) -> None:
        self.write_text(key, dump_document(key, value))

    def read_text(self, key: str) -> Optional[str]:
        return self.files.get(_normalize_key(key))

    def write_text(self, key: str, content: str) -> None:
        key = _normalize_key(key)
        self.files[key] = content
        self._add_parents(key)

    def _add_parents(self, key: str) -> None:
        parent = PurePosixPath(key).parent
        while str(parent) != ".":
            self.directories.add(str(parent))
            parent = parent.parent

    def exists(self, key: str) -> bool:
        key = _normalize_key(key)
        return key in self.files or key in self.directories

    def delete(self, key: str) -> None:
        self.files.pop(_normalize_key(key), None)

    def _children(self, prefix: str, names: set[str]) -> list[str]:
        prefix = _normalize_key(prefix)
        found = set()
        for name in names:
            parent = str(PurePosixPath(name).parent)
            if parent == (prefix or "."):
                found.add(PurePosixPath(name).name)
        return sorted(found)

    def list(self, prefix: str) -> list[str]:
        return self._children(prefix, set(self.files))

    def list_directories(self, prefix: str) -> list[str]:
        return self._children(prefix, self.directories)

    def ensure_directory(self, key: str) -> None:
        key = _normalize_key(key)
        if key:
            self.directories.add(key)
            self._add_parents(key)

    def is_initialized(self) -> bool:
        return self.exists(PROJECT_KEY)

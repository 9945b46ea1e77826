# common/state_store.py
# -*- coding: utf-8 -*-
"""
Durable tracking of completed installation steps.

Completion is recorded as one marker file per step key; the presence of the
marker is the only completion signal. The marker body holds the UTC time the
step first completed, kept for diagnostics. The store also keeps small
key/value settings, the resume point used across reboots and JSON failure
records, each in its own subdirectory of the state directory.
"""

import datetime
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from provisioner import config as static_config
from provisioner.exceptions import StateStoreError

module_logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


def validate_key(key: str) -> str:
    """Return `key` unchanged, or raise ValueError if it cannot name a marker."""
    if not isinstance(key, str) or not _KEY_PATTERN.match(key):
        raise ValueError(
            f"Invalid state key {key!r}: use letters, digits, '_', '-' or '.', "
            "not starting with '.' or '-'."
        )
    return key


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(
        timespec="seconds"
    )


def _error_stamp() -> str:
    return f"{datetime.datetime.now(datetime.timezone.utc):%Y%m%d%H%M%S%f}"


class StateStore(ABC):
    """Key-existence store for step completion plus resume bookkeeping."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Return True if `key` carries a completion marker."""

    @abstractmethod
    def set(self, key: str) -> None:
        """Record `key` as completed. Setting an existing key is a no-op."""

    @abstractmethod
    def reset(self, key: str) -> bool:
        """Remove the marker for `key`. Returns True if one was removed."""

    @abstractmethod
    def clear(self) -> int:
        """Remove every marker. Returns how many were removed."""

    @abstractmethod
    def completed_keys(self) -> List[str]:
        """Return the marked keys in sorted order."""

    @abstractmethod
    def completed_at(self, key: str) -> Optional[str]:
        """Return the stored completion timestamp for `key`, if any."""

    @abstractmethod
    def set_value(self, key: str, value: str) -> None: ...

    @abstractmethod
    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]: ...

    def has_value(self, key: str) -> bool:
        return self.get_value(key) is not None

    @abstractmethod
    def save_resume_point(self, phase_id: str, next_step: str) -> None:
        """Remember where a run stopped for a reboot."""

    @abstractmethod
    def resume_point(self) -> Optional[Tuple[str, str]]:
        """Return `(phase_id, next_step)` saved before a reboot, if any."""

    @abstractmethod
    def clear_resume_point(self) -> None: ...

    @abstractmethod
    def reboot_required(self) -> bool: ...

    @abstractmethod
    def record_error(
        self, step_key: str, message: str, result: str = "fatal"
    ) -> str:
        """Persist a failure record and return its id."""

    @abstractmethod
    def error_records(self) -> List[Dict[str, Any]]: ...


class InMemoryStateStore(StateStore):
    """Process-local store, used by tests and dry runs."""

    def __init__(self, completed: Optional[List[str]] = None):
        self._markers: Dict[str, str] = {}
        self._values: Dict[str, str] = {}
        self._resume: Optional[Tuple[str, str]] = None
        self._errors: List[Dict[str, Any]] = []
        for key in completed or []:
            self.set(key)

    def has(self, key: str) -> bool:
        return validate_key(key) in self._markers

    def set(self, key: str) -> None:
        self._markers.setdefault(validate_key(key), _utc_now())

    def reset(self, key: str) -> bool:
        return self._markers.pop(validate_key(key), None) is not None

    def clear(self) -> int:
        count = len(self._markers)
        self._markers.clear()
        return count

    def completed_keys(self) -> List[str]:
        return sorted(self._markers)

    def completed_at(self, key: str) -> Optional[str]:
        return self._markers.get(validate_key(key))

    def set_value(self, key: str, value: str) -> None:
        self._values[validate_key(key)] = str(value)

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(validate_key(key), default)

    def save_resume_point(self, phase_id: str, next_step: str) -> None:
        self._resume = (phase_id, next_step)

    def resume_point(self) -> Optional[Tuple[str, str]]:
        return self._resume

    def clear_resume_point(self) -> None:
        self._resume = None

    def reboot_required(self) -> bool:
        return self._resume is not None

    def record_error(
        self, step_key: str, message: str, result: str = "fatal"
    ) -> str:
        error_id = f"{len(self._errors) + 1:04d}-{step_key}"
        self._errors.append(
            {
                "id": error_id,
                "step": step_key,
                "result": result,
                "message": message,
                "timestamp": _utc_now(),
            }
        )
        return error_id

    def error_records(self) -> List[Dict[str, Any]]:
        return list(self._errors)


class FileStateStore(StateStore):
    """
    Marker files under `<state_dir>/completed/`.

    The state directory must live on a filesystem that the tracked steps do
    not reformat or remount. Write failures raise StateStoreError: a step
    whose completion cannot be recorded would otherwise run again.
    """

    def __init__(
        self,
        state_dir: Path,
        current_logger: Optional[logging.Logger] = None,
    ):
        self.state_dir = Path(state_dir)
        self.completed_dir = self.state_dir / static_config.COMPLETED_SUBDIR
        self.values_dir = self.state_dir / static_config.VALUES_SUBDIR
        self.errors_dir = self.state_dir / static_config.ERRORS_SUBDIR
        self.logger = current_logger if current_logger else module_logger

    def _ensure_dir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True, mode=0o750)
        except OSError as e:
            raise StateStoreError(
                f"Cannot create state directory {directory}: {e}"
            ) from e

    def _atomic_write(self, path: Path, content: str) -> None:
        self._ensure_dir(path.parent)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=path.parent,
                prefix=f".{path.name}.",
                delete=False,
                encoding="utf-8",
            ) as tmp_f:
                tmp_name = tmp_f.name
                tmp_f.write(content)
                tmp_f.flush()
                os.fsync(tmp_f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StateStoreError(f"Cannot write state file {path}: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateStoreError(f"Cannot read state file {path}: {e}") from e

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateStoreError(f"Cannot remove state file {path}: {e}") from e

    def has(self, key: str) -> bool:
        return (self.completed_dir / validate_key(key)).is_file()

    def set(self, key: str) -> None:
        marker = self.completed_dir / validate_key(key)
        if marker.is_file():
            return
        self._atomic_write(marker, _utc_now() + "\n")
        self.logger.debug(f"Marked step '{key}' as completed in {marker}")

    def reset(self, key: str) -> bool:
        removed = self._remove(self.completed_dir / validate_key(key))
        if removed:
            self.logger.info(f"Reset completion marker for '{key}'")
        return removed

    def clear(self) -> int:
        removed = 0
        for key in self.completed_keys():
            if self._remove(self.completed_dir / key):
                removed += 1
        self.clear_resume_point()
        self.logger.info(f"Cleared {removed} completion marker(s) from {self.completed_dir}")
        return removed

    def completed_keys(self) -> List[str]:
        if not self.completed_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.completed_dir.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )

    def completed_at(self, key: str) -> Optional[str]:
        return self._read(self.completed_dir / validate_key(key)) or None

    def set_value(self, key: str, value: str) -> None:
        self._atomic_write(self.values_dir / validate_key(key), f"{value}\n")

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._read(self.values_dir / validate_key(key))
        return default if value is None else value

    def save_resume_point(self, phase_id: str, next_step: str) -> None:
        self._atomic_write(
            self.state_dir / static_config.RESUME_PHASE_FILENAME, f"{phase_id}\n"
        )
        self._atomic_write(
            self.state_dir / static_config.RESUME_STEP_FILENAME, f"{next_step}\n"
        )
        self._atomic_write(
            self.state_dir / static_config.REBOOT_MARKER_FILENAME, _utc_now() + "\n"
        )

    def resume_point(self) -> Optional[Tuple[str, str]]:
        phase_id = self._read(self.state_dir / static_config.RESUME_PHASE_FILENAME)
        next_step = self._read(self.state_dir / static_config.RESUME_STEP_FILENAME)
        if not phase_id:
            return None
        return phase_id, next_step or ""

    def clear_resume_point(self) -> None:
        for filename in (
            static_config.RESUME_PHASE_FILENAME,
            static_config.RESUME_STEP_FILENAME,
            static_config.REBOOT_MARKER_FILENAME,
        ):
            self._remove(self.state_dir / filename)

    def reboot_required(self) -> bool:
        return (self.state_dir / static_config.REBOOT_MARKER_FILENAME).is_file()

    def record_error(
        self, step_key: str, message: str, result: str = "fatal"
    ) -> str:
        timestamp = _utc_now()
        stamp = _error_stamp()
        error_id = f"{stamp}-{validate_key(step_key)}"
        sequence = 0
        # Never overwrite an earlier record with the same stamp.
        while (self.errors_dir / f"{error_id}.json").exists():
            sequence += 1
            error_id = f"{stamp}.{sequence:03d}-{step_key}"
        payload = {
            "id": error_id,
            "step": step_key,
            "result": result,
            "message": message,
            "timestamp": timestamp,
        }
        self._atomic_write(
            self.errors_dir / f"{error_id}.json", json.dumps(payload, indent=2) + "\n"
        )
        return error_id

    def error_records(self) -> List[Dict[str, Any]]:
        if not self.errors_dir.is_dir():
            return []
        records = []
        for entry in sorted(self.errors_dir.glob("*.json")):
            try:
                records.append(json.loads(entry.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                self.logger.warning(f"Skipping unreadable error record {entry}: {e}")
        return records

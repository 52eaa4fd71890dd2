from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional

from adapters.prefs.base import Entries, PreferenceFiles
from adapters.prefs.xml_store import XmlPreferenceFiles
from inspector.errors.codes import ErrorCode
from inspector.errors.exceptions import AppError, NotFound, ValidationError
from inspector.identifiers import is_plain_name, require_text
from inspector.pref_values import PrefValue, check_text, coerce
from inspector.types import PreferenceEntry, PreferenceNamespace, ResultEnvelope

log = logging.getLogger(__name__)


def _entry(key: str, value: PrefValue) -> PreferenceEntry:
    return PreferenceEntry(key=key, type=value.type.value, value=value.render())


def _namespace(name: str, entries: Entries) -> PreferenceNamespace:
    return PreferenceNamespace(name=name, entries=[_entry(k, v) for k, v in entries])


def check_namespace(name: Any, field_name: str = "namespace") -> str:
    check_text(require_text(name, field_name), field_name)
    if not is_plain_name(name) or ".." in name:
        raise ValidationError(f"Invalid namespace name: {name}")
    return name


class PreferenceStore:
    """
    Type-tagged key-value CRUD over a directory of preference namespaces.

    Reads raise classified AppErrors; every mutation returns a
    ResultEnvelope instead of raising.
    """

    def __init__(
        self,
        prefs_dir: str | Path,
        *,
        files: Optional[PreferenceFiles] = None,
    ) -> None:
        self.prefs_dir = Path(prefs_dir)
        self.files: PreferenceFiles = files or XmlPreferenceFiles(self.prefs_dir)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_all(self) -> List[PreferenceNamespace]:
        out: List[PreferenceNamespace] = []
        for name in self.files.names():
            try:
                entries = self.files.read(name)
            except AppError as e:
                log.warning(
                    "Unreadable preference namespace",
                    extra={"namespace": name, "error": e.message},
                )
                entries = []
            out.append(_namespace(name, entries))
        return out

    def get_namespace(self, name: str) -> PreferenceNamespace:
        check_namespace(name, "name")
        if not self.files.exists(name):
            raise NotFound(f"Preference not found: {name}")
        return _namespace(name, self.files.read(name))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert(
        self, namespace: str, key: str, value: Any, type: str
    ) -> ResultEnvelope:
        try:
            check_namespace(namespace)
            check_text(require_text(key, "key"), "key")
            coerced = coerce(type, value)
            entries = self.files.read(namespace)
            for i, (existing, _) in enumerate(entries):
                if existing == key:
                    entries[i] = (key, coerced)
                    break
            else:
                entries.append((key, coerced))
            self.files.write(namespace, entries)
        except AppError as e:
            return self._failed("save preference", e)
        except Exception as e:
            return self._crashed("save preference", e)

        log.info(
            "Preference saved",
            extra={"namespace": namespace, "key": key, "type": coerced.type.value},
        )
        return ResultEnvelope.success("Preference saved successfully", affected_rows=1)

    def create_namespace(self, name: str) -> ResultEnvelope:
        try:
            check_namespace(name, "name")
            if self.files.exists(name):
                return ResultEnvelope.success(f"Preference '{name}' already exists")
            self.files.write(name, [])
        except AppError as e:
            return self._failed("create preference", e)
        except Exception as e:
            return self._crashed("create preference", e)

        log.info("Preference namespace created", extra={"namespace": name})
        return ResultEnvelope.success(f"Preference '{name}' created successfully")

    def remove_entry(self, namespace: str, key: str) -> ResultEnvelope:
        try:
            check_namespace(namespace)
            require_text(key, "key")
            if not self.files.exists(namespace):
                return ResultEnvelope.success(
                    f"Entry '{key}' removed from '{namespace}'", affected_rows=0
                )
            entries = self.files.read(namespace)
            kept = [(k, v) for k, v in entries if k != key]
            removed = len(entries) - len(kept)
            if removed:
                self.files.write(namespace, kept)
        except AppError as e:
            return self._failed("remove entry", e)
        except Exception as e:
            return self._crashed("remove entry", e)

        log.info(
            "Preference entry removed",
            extra={"namespace": namespace, "key": key, "affected_rows": removed},
        )
        return ResultEnvelope.success(
            f"Entry '{key}' removed from '{namespace}'", affected_rows=removed
        )

    def remove_namespace(self, namespace: str) -> ResultEnvelope:
        try:
            check_namespace(namespace)
            if not self.files.delete(namespace):
                raise NotFound(f"Preference not found: {namespace}")
        except AppError as e:
            return self._failed("delete preference", e)
        except Exception as e:
            return self._crashed("delete preference", e)

        log.info("Preference namespace deleted", extra={"namespace": namespace})
        return ResultEnvelope.success(f"Preference '{namespace}' deleted successfully")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failed(self, action: str, exc: AppError) -> ResultEnvelope:
        log.debug(
            "Preference mutation failed",
            extra={"action": action, "error_code": exc.code.value},
        )
        if exc.code == ErrorCode.OPEN_FAILURE:
            message = f"Failed to {action}: {exc.message}"
        else:
            message = exc.message
        return ResultEnvelope.error(message, exc.code, details=exc.details)

    def _crashed(self, action: str, exc: Exception) -> ResultEnvelope:
        log.exception("Unexpected preference mutation error", extra={"action": action})
        return ResultEnvelope.error(
            f"Failed to {action}: {exc}", ErrorCode.MUTATION_FAILURE
        )

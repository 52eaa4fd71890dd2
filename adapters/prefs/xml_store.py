from __future__ import annotations

import logging
import os
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional

from adapters.prefs.base import Entries, PreferenceFiles
from inspector.errors.exceptions import OpenFailure
from inspector.pref_values import (
    BooleanPref,
    FloatPref,
    IntPref,
    LongPref,
    NullPref,
    PrefValue,
    StringPref,
    StringSetPref,
    check_text,
)

log = logging.getLogger(__name__)

XML_HEADER = "<?xml version='1.0' encoding='utf-8' standalone='yes' ?>\n"
SUFFIX = ".xml"
BACKUP_SUFFIX = ".bak"

_SCALAR_TAGS = {
    "int": IntPref,
    "long": LongPref,
    "float": FloatPref,
}


def _parse_entry(el: ET.Element) -> Optional[PrefValue]:
    tag = el.tag
    if tag == "string":
        return StringPref(el.text or "")
    if tag in _SCALAR_TAGS:
        variant = _SCALAR_TAGS[tag]
        raw = el.get("value", "0")
        return variant(float(raw)) if tag == "float" else variant(int(raw))
    if tag == "boolean":
        return BooleanPref(el.get("value", "false").strip().lower() == "true")
    if tag == "set":
        return StringSetPref(tuple(child.text or "" for child in el if child.tag == "string"))
    if tag == "null":
        return NullPref()
    return None


def _entry_element(key: str, value: PrefValue) -> ET.Element:
    # ElementTree writes XML-illegal characters without complaint
    check_text(key, "key")
    if isinstance(value, StringPref):
        check_text(value.value, "value")
        el = ET.Element("string", {"name": key})
        el.text = value.value
    elif isinstance(value, StringSetPref):
        el = ET.Element("set", {"name": key})
        for item in value.value:
            ET.SubElement(el, "string").text = check_text(item, "value")
    elif isinstance(value, NullPref):
        el = ET.Element("null", {"name": key})
    elif isinstance(value, BooleanPref):
        el = ET.Element("boolean", {"name": key, "value": value.render()})
    elif isinstance(value, IntPref):
        el = ET.Element("int", {"name": key, "value": value.render()})
    elif isinstance(value, LongPref):
        el = ET.Element("long", {"name": key, "value": value.render()})
    elif isinstance(value, FloatPref):
        el = ET.Element("float", {"name": key, "value": value.render()})
    else:
        raise TypeError(f"Unknown preference variant: {type(value).__name__}")
    return el


def parse_document(text: str) -> Entries:
    """Parse a namespace document into (key, value) pairs in stored order."""
    root = ET.fromstring(text)
    if root.tag != "map":
        raise ValueError(f"Expected <map> root, got <{root.tag}>")
    entries: Entries = []
    for el in root:
        key = el.get("name")
        if key is None:
            continue
        value = _parse_entry(el)
        if value is None:
            # foreign tags have no variant
            log.debug("Skipping preference entry", extra={"key": key, "tag": el.tag})
            continue
        entries.append((key, value))
    return entries


def render_document(entries: Entries) -> str:
    root = ET.Element("map")
    for key, value in entries:
        root.append(_entry_element(key, value))
    ET.indent(root, space="    ")
    return XML_HEADER + ET.tostring(root, encoding="unicode") + "\n"


class XmlPreferenceFiles(PreferenceFiles):
    """
    One ``<name>.xml`` document per namespace, in the Android
    SharedPreferences layout. Writes go through a temp file, fsync and an
    atomic rename, so a returned write is visible to the next read.
    """

    def __init__(self, prefs_dir: str | Path) -> None:
        self.prefs_dir = Path(prefs_dir)

    def path_for(self, name: str) -> Path:
        return self.prefs_dir / f"{name}{SUFFIX}"

    def names(self) -> List[str]:
        if not self.prefs_dir.is_dir():
            return []
        return sorted(
            p.name[: -len(SUFFIX)]
            for p in self.prefs_dir.iterdir()
            if p.is_file() and p.name.endswith(SUFFIX)
        )

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def read(self, name: str) -> Entries:
        path = self.path_for(name)
        try:
            text = path.read_text(encoding="utf-8")
            if not text.strip():
                return []
            return parse_document(text)
        except FileNotFoundError:
            return []
        except (OSError, ET.ParseError, ValueError) as e:
            raise OpenFailure(
                f"Cannot read preferences: {name}", details=[str(e)]
            ) from e

    def write(self, name: str, entries: Entries) -> None:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = render_document(entries)
        fd, tmp = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        log.debug(
            "Wrote preference namespace",
            extra={"namespace": name, "entry_count": len(entries)},
        )

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        backup = path.with_name(path.name + BACKUP_SUFFIX)
        if backup.exists():
            backup.unlink()
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

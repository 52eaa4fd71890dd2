from typing import List, Protocol, Tuple

from inspector.pref_values import PrefValue

Entries = List[Tuple[str, PrefValue]]


class PreferenceFiles(Protocol):
    """Namespace-per-file preference storage."""

    def names(self) -> List[str]:
        """Namespace names present in storage, sorted."""

    def exists(self, name: str) -> bool:
        """True when the namespace file exists."""

    def read(self, name: str) -> Entries:
        """Entries of one namespace in stored order."""

    def write(self, name: str, entries: Entries) -> None:
        """Replace a namespace's contents; durable before returning."""

    def delete(self, name: str) -> bool:
        """Remove a namespace file; False when it did not exist."""

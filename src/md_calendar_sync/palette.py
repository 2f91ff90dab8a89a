"""
Shared color palette between the File Store and the System Store.
"""

import logging

from md_calendar_sync.models import StoreIOError
from md_calendar_sync.system_store import SystemStore

DEFAULT_PALETTE: dict[str, int] = {
    "1": 0xFF7986CB,
    "2": 0xFF33B679,
    "3": 0xFF8E24AA,
    "4": 0xFFE67C73,
    "5": 0xFFF6BF26,
    "6": 0xFFF4511E,
    "7": 0xFF039BE5,
    "8": 0xFF616161,
    "9": 0xFF3F51B5,
    "10": 0xFF0B8043,
    "11": 0xFFD60000,
}

CUSTOM_PREFIX = "custom_"


def custom_key(value: int) -> str:
    return f"{CUSTOM_PREFIX}{value & 0xFFFFFFFF}"


class PaletteManager:
    """Keeps ``color key -> color value`` consistent with the System Store."""

    def __init__(self, store: SystemStore):
        self.store = store
        self.logger = logging.getLogger(__name__)
        self.mapping: dict[str, int] = dict(DEFAULT_PALETTE)

    def reconcile(self, used_values: set[int]) -> dict[str, int]:
        """
        Bring the store's palette in line with the colors actually in use.

        Defaults are (re)registered and never removed; a custom key is minted
        for every used value no key covers, and custom keys whose value is no
        longer used anywhere are deleted.
        """
        used = {v & 0xFFFFFFFF for v in used_values if v is not None}
        try:
            existing = self.store.list_colors()
        except StoreIOError as e:
            self.logger.error(f"Cannot read color palette: {e}")
            existing = {}

        mapping: dict[str, int] = {}
        for key, value in existing.items():
            if key not in DEFAULT_PALETTE and value not in used:
                try:
                    self.store.delete_color(key)
                    self.logger.debug(f"Retired unused color {key}")
                    continue
                except StoreIOError as e:
                    self.logger.warning(f"Cannot retire color {key}: {e}")
            mapping[key] = value

        for key, value in DEFAULT_PALETTE.items():
            if key not in mapping:
                self._register(mapping, key, value)

        covered = set(mapping.values())
        for value in sorted(used - covered):
            self._register(mapping, custom_key(value), value)

        self.mapping = mapping
        return mapping

    def _register(self, mapping: dict[str, int], key: str, value: int):
        try:
            self.store.insert_color(key, value)
        except StoreIOError as e:
            self.logger.error(f"Cannot register color {key}: {e}")
            return
        mapping[key] = value

    def resolve(self, color: int | None, color_key: str | None) -> int | None:
        """Effective color of a record: its explicit value, else its key's value."""
        if color is not None:
            return color
        if color_key is not None:
            return self.mapping.get(color_key)
        return None

    def key_for(self, value: int | None) -> str | None:
        if value is None:
            return None
        value &= 0xFFFFFFFF
        for key, known in self.mapping.items():
            if known == value:
                return key
        return None

"""
Unit tests for PaletteManager against the in-memory fake store.
"""

from md_calendar_sync.palette import DEFAULT_PALETTE
from md_calendar_sync.palette import PaletteManager
from md_calendar_sync.palette import custom_key


class TestReconcile:
    def test_defaults_registered_on_empty_store(self, fake_store):
        PaletteManager(fake_store).reconcile(set())
        assert fake_store.list_colors() == DEFAULT_PALETTE

    def test_custom_key_minted_for_unknown_color(self, fake_store):
        palette = PaletteManager(fake_store)
        palette.reconcile({0xFF123456})

        assert fake_store.list_colors()[custom_key(0xFF123456)] == 0xFF123456
        assert palette.key_for(0xFF123456) == custom_key(0xFF123456)

    def test_default_value_reuses_default_key(self, fake_store):
        """A color already in the default palette gets no custom key."""
        palette = PaletteManager(fake_store)
        palette.reconcile({DEFAULT_PALETTE["7"]})

        assert palette.key_for(DEFAULT_PALETTE["7"]) == "7"
        assert not any(k.startswith("custom_") for k in fake_store.list_colors())

    def test_unused_custom_key_retired(self, fake_store):
        fake_store.insert_color(custom_key(0xFF000001), 0xFF000001)

        PaletteManager(fake_store).reconcile(set())

        assert custom_key(0xFF000001) not in fake_store.list_colors()

    def test_defaults_never_retired(self, fake_store):
        PaletteManager(fake_store).reconcile(set())
        PaletteManager(fake_store).reconcile(set())
        assert set(DEFAULT_PALETTE) <= set(fake_store.list_colors())


class TestResolve:
    def test_explicit_color_wins(self, fake_store):
        palette = PaletteManager(fake_store)
        assert palette.resolve(0xFF111111, "7") == 0xFF111111

    def test_key_resolved_through_mapping(self, fake_store):
        palette = PaletteManager(fake_store)
        palette.reconcile(set())
        assert palette.resolve(None, "7") == DEFAULT_PALETTE["7"]

    def test_nothing_set(self, fake_store):
        assert PaletteManager(fake_store).resolve(None, None) is None

"""
Unit tests for runtime adaptive configuration.
"""

import pytest

from learnpath.adaptive.runtime_config import (
    AdaptiveConfig,
    RuntimeConfigProvider,
    coerce_config_rows,
)
from learnpath.errors import StoreError


class CountingStore:
    """Config-only store stand-in that counts reads."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.calls = 0

    def fetch_config_rows(self, prefix):
        self.calls += 1
        if self.error:
            raise self.error
        return {key: value for key, value in self.rows.items() if key.startswith(prefix)}


class TestAdaptiveConfig:
    def test_defaults(self):
        config = AdaptiveConfig()
        assert config.target_accuracy_min == 0.65
        assert config.target_accuracy_max == 0.80
        assert config.max_remediation_pending == 2
        assert config.max_practice_pending == 3
        assert config.struggle_consecutive_misses == 3
        assert config.unscored_quiz_is_miss is True

    def test_inverted_band_rejected(self):
        with pytest.raises(ValueError):
            AdaptiveConfig(target_accuracy_min=0.9, target_accuracy_max=0.5)

    def test_from_settings(self, settings):
        settings.adaptive_max_practice_pending = 5
        assert AdaptiveConfig.from_settings(settings).max_practice_pending == 5


class TestCoerceConfigRows:
    def test_parses_strings_and_numbers(self):
        config = coerce_config_rows(
            {
                "adaptive.target_accuracy_min": "0.5",
                "adaptive.target_accuracy_max": 0.9,
                "adaptive.max_practice_pending": "4",
                "adaptive.unscored_quiz_is_miss": "false",
            },
            AdaptiveConfig(),
        )
        assert config.target_accuracy_min == 0.5
        assert config.target_accuracy_max == 0.9
        assert config.max_practice_pending == 4
        assert config.unscored_quiz_is_miss is False

    def test_unparseable_values_keep_defaults(self):
        config = coerce_config_rows(
            {
                "adaptive.target_accuracy_min": "lots",
                "adaptive.max_remediation_pending": None,
                "adaptive.unscored_quiz_is_miss": "maybe",
            },
            AdaptiveConfig(),
        )
        assert config == AdaptiveConfig()

    def test_minimums_enforced(self):
        config = coerce_config_rows(
            {
                "adaptive.max_remediation_pending": 0,
                "adaptive.max_practice_pending": -3,
                "adaptive.struggle_consecutive_misses": 1,
            },
            AdaptiveConfig(),
        )
        assert config.max_remediation_pending == 1
        assert config.max_practice_pending == 1
        assert config.struggle_consecutive_misses == 2

    def test_band_clamped_to_unit_interval(self):
        config = coerce_config_rows(
            {"adaptive.target_accuracy_min": -1, "adaptive.target_accuracy_max": 7},
            AdaptiveConfig(),
        )
        assert config.target_accuracy_min == 0.0
        assert config.target_accuracy_max == 1.0

    def test_inverted_band_reverts_to_defaults(self):
        config = coerce_config_rows(
            {"adaptive.target_accuracy_min": 0.9, "adaptive.target_accuracy_max": 0.4},
            AdaptiveConfig(),
        )
        assert config.target_accuracy_min == 0.65
        assert config.target_accuracy_max == 0.80

    def test_unknown_keys_ignored(self):
        assert coerce_config_rows({"adaptive.colour": "blue"}, AdaptiveConfig()) == AdaptiveConfig()


class TestRuntimeConfigProvider:
    def test_loads_store_rows(self, settings):
        store = CountingStore({"adaptive.max_remediation_pending": 3})
        assert RuntimeConfigProvider(store, settings).load().max_remediation_pending == 3

    def test_store_failure_uses_settings_defaults(self, settings):
        settings.adaptive_struggle_consecutive_misses = 4
        store = CountingStore(error=StoreError("down"))
        config = RuntimeConfigProvider(store, settings).load()
        assert config.struggle_consecutive_misses == 4

    def test_rereads_every_call_without_ttl(self, settings):
        store = CountingStore()
        provider = RuntimeConfigProvider(store, settings, ttl_seconds=0)
        provider.load()
        provider.load()
        assert store.calls == 2

    def test_ttl_caches_until_invalidated(self, settings):
        store = CountingStore({"adaptive.max_practice_pending": 2})
        provider = RuntimeConfigProvider(store, settings, ttl_seconds=300)
        assert provider.load().max_practice_pending == 2

        store.rows["adaptive.max_practice_pending"] = 6
        assert provider.load().max_practice_pending == 2
        assert store.calls == 1

        provider.invalidate()
        assert provider.load().max_practice_pending == 6

"""
Runtime Adaptive Configuration.

Operator-tunable thresholds live as key/value rows in the store
(``platform_config``) so they can change without a deploy. The orchestrator
loads them once at the start of every call and passes the resulting
AdaptiveConfig explicitly to every aggregator, controller and manager call.

Supported keys:
- adaptive.target_accuracy_min
- adaptive.target_accuracy_max
- adaptive.max_remediation_pending (min 1)
- adaptive.max_practice_pending (min 1)
- adaptive.struggle_consecutive_misses (min 2)
- adaptive.unscored_quiz_is_miss
"""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, model_validator

from learnpath.config import Settings, get_settings
from learnpath.errors import StoreError

if TYPE_CHECKING:
    from learnpath.db.store import ActivityStore

CONFIG_KEY_PREFIX = "adaptive."


class AdaptiveConfig(BaseModel):
    """Immutable snapshot of adaptive thresholds for one orchestration call."""

    model_config = ConfigDict(frozen=True)

    target_accuracy_min: float = 0.65
    target_accuracy_max: float = 0.80
    max_remediation_pending: int = 2
    max_practice_pending: int = 3
    struggle_consecutive_misses: int = 3
    unscored_quiz_is_miss: bool = True

    @model_validator(mode="after")
    def _band_order(self) -> AdaptiveConfig:
        if self.target_accuracy_min > self.target_accuracy_max:
            raise ValueError("target_accuracy_min must not exceed target_accuracy_max")
        return self

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> AdaptiveConfig:
        settings = settings or get_settings()
        return cls(**settings.get_adaptive_defaults())


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    return None


def coerce_config_rows(rows: dict[str, Any], defaults: AdaptiveConfig) -> AdaptiveConfig:
    """
    Merge raw key/value rows over defaults.

    Unparseable values are ignored (the default stays). Accuracy edges are
    clamped to [0, 1]; if they end up out of order the default band is kept.

    Args:
        rows: Mapping of config key -> raw value (as stored)
        defaults: Values used for missing or invalid keys

    Returns:
        A validated AdaptiveConfig
    """
    values = defaults.model_dump()

    for field in ("target_accuracy_min", "target_accuracy_max"):
        number = _as_number(rows.get(CONFIG_KEY_PREFIX + field))
        if number is not None:
            values[field] = max(0.0, min(1.0, number))

    minimums = {
        "max_remediation_pending": 1,
        "max_practice_pending": 1,
        "struggle_consecutive_misses": 2,
    }
    for field, minimum in minimums.items():
        number = _as_number(rows.get(CONFIG_KEY_PREFIX + field))
        if number is not None:
            values[field] = max(minimum, int(number))

    flag = _as_bool(rows.get(CONFIG_KEY_PREFIX + "unscored_quiz_is_miss"))
    if flag is not None:
        values["unscored_quiz_is_miss"] = flag

    if values["target_accuracy_min"] > values["target_accuracy_max"]:
        logger.warning(
            "Ignoring inverted accuracy band {:.2f} > {:.2f}",
            values["target_accuracy_min"],
            values["target_accuracy_max"],
        )
        values["target_accuracy_min"] = defaults.target_accuracy_min
        values["target_accuracy_max"] = defaults.target_accuracy_max

    return AdaptiveConfig(**values)


class RuntimeConfigProvider:
    """
    Load AdaptiveConfig from the store with settings fallback.

    With ``ttl_seconds`` of 0 (the default) every call re-reads the store.
    """

    def __init__(
        self,
        store: ActivityStore,
        settings: Settings | None = None,
        ttl_seconds: float | None = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._ttl = self._settings.runtime_config_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._cached: AdaptiveConfig | None = None
        self._loaded_at = 0.0

    @property
    def defaults(self) -> AdaptiveConfig:
        return AdaptiveConfig.from_settings(self._settings)

    def load(self) -> AdaptiveConfig:
        """Return the current config, re-reading the store unless cached."""
        now = time.monotonic()
        if self._cached is not None and self._ttl > 0 and now - self._loaded_at < self._ttl:
            return self._cached

        defaults = self.defaults
        try:
            rows = self._store.fetch_config_rows(CONFIG_KEY_PREFIX)
        except StoreError as exc:
            logger.warning(f"Runtime config unavailable, using defaults: {exc}")
            return defaults

        config = coerce_config_rows(rows, defaults)
        self._cached = config
        self._loaded_at = now
        return config

    def invalidate(self) -> None:
        self._cached = None

"""Tunable scheduling parameters."""
import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path

import yaml

from repeatrom.errors import InvalidConfigError
from repeatrom.models import Pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Configuration:
    test_pool_target_size: int = 40
    snooze_incorrect_minutes: float = 1
    snooze_test_correct_minutes: float = 5
    snooze_learned_correct_hours: float = 1
    snooze_master_correct_days: float = 2
    pool_weight_test: float = 12
    pool_weight_learned: float = 4
    pool_weight_master: float = 1
    pool_penalty_threshold: int = 8
    strategy_oldest_pct: float = 30
    strategy_demoted_pct: float = 30
    promotion_consecutive_correct: int = 2
    demotion_incorrect_count: int = 1
    auto_advance_on_correct: bool = False
    auto_advance_delay_ms: int = 1000

    def pool_weight(self, pool: Pool) -> float:
        return {
            Pool.TEST: self.pool_weight_test,
            Pool.LEARNED: self.pool_weight_learned,
            Pool.MASTER: self.pool_weight_master,
        }.get(pool, 0)

    def to_dict(self) -> dict:
        return asdict(self)


CONFIG_FIELDS = {f.name: f for f in fields(Configuration)}

# Must be >= 1; a zero threshold would promote/demote on every answer.
_AT_LEAST_ONE = ("promotion_consecutive_correct", "demotion_incorrect_count", "pool_penalty_threshold")


def _coerce(name: str, value):
    expected = CONFIG_FIELDS[name].type
    if expected in (bool, "bool"):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise InvalidConfigError(f"{name} must be a boolean, got {value!r}")
        return bool(value)
    if isinstance(value, bool):
        raise InvalidConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidConfigError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidConfigError(f"{name} must be a finite number, got {value!r}")
    if expected in (int, "int"):
        if not number.is_integer():
            raise InvalidConfigError(f"{name} must be a whole number, got {value!r}")
        return int(number)
    return number


def validate_config(config: Configuration) -> Configuration:
    """Raise InvalidConfigError if any parameter is out of range."""
    for name, f in CONFIG_FIELDS.items():
        value = getattr(config, name)
        if f.type in (bool, "bool"):
            continue
        if not math.isfinite(value):
            raise InvalidConfigError(f"{name} must be a finite number (got {value})")
        if value < 0:
            raise InvalidConfigError(f"{name} must not be negative (got {value})")
    for name in _AT_LEAST_ONE:
        if getattr(config, name) < 1:
            raise InvalidConfigError(f"{name} must be at least 1 (got {getattr(config, name)})")
    if config.strategy_oldest_pct + config.strategy_demoted_pct > 100:
        raise InvalidConfigError(
            "strategy_oldest_pct + strategy_demoted_pct must not exceed 100 "
            f"(got {config.strategy_oldest_pct} + {config.strategy_demoted_pct})"
        )
    return config


def apply_updates(config: Configuration, updates: dict) -> Configuration:
    """Return a validated copy of config with updates applied."""
    unknown = sorted(set(updates) - set(CONFIG_FIELDS) - {"id"})
    if unknown:
        raise InvalidConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    coerced = {k: _coerce(k, v) for k, v in updates.items() if k in CONFIG_FIELDS}
    return validate_config(replace(config, **coerced))


def config_from_dict(data: dict) -> Configuration:
    """Build a configuration from stored values, ignoring keys we no longer know."""
    known = {k: v for k, v in data.items() if k in CONFIG_FIELDS}
    dropped = set(data) - set(known) - {"id"}
    if dropped:
        logger.warning("Ignoring unknown stored configuration keys: %s", sorted(dropped))
    return apply_updates(Configuration(), known)


def load_config_file(path: str) -> dict:
    """Read a YAML (or JSON) mapping of configuration overrides."""
    data = yaml.safe_load(Path(path).read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError(f"{path}: expected a mapping of settings, got {type(data).__name__}")
    apply_updates(Configuration(), data)
    return data

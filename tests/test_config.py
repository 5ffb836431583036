import pytest

from repeatrom.config import (
    Configuration, apply_updates, config_from_dict, load_config_file, validate_config,
)
from repeatrom.errors import InvalidConfigError
from repeatrom.models import Pool


def test_defaults():
    c = Configuration()
    assert c.test_pool_target_size == 40
    assert c.snooze_incorrect_minutes == 1
    assert (c.pool_weight_test, c.pool_weight_learned, c.pool_weight_master) == (12, 4, 1)
    assert c.pool_penalty_threshold == 8
    assert c.strategy_oldest_pct == 30
    assert c.strategy_demoted_pct == 30
    assert c.promotion_consecutive_correct == 2
    assert c.demotion_incorrect_count == 1
    assert c.auto_advance_on_correct is False


def test_pool_weight_lookup():
    c = Configuration(pool_weight_learned=7)
    assert c.pool_weight(Pool.TEST) == 12
    assert c.pool_weight(Pool.LEARNED) == 7
    assert c.pool_weight(Pool.LATENT) == 0


def test_apply_updates_returns_new_config():
    base = Configuration()
    updated = apply_updates(base, {"test_pool_target_size": "5", "auto_advance_on_correct": "yes"})
    assert updated.test_pool_target_size == 5
    assert updated.auto_advance_on_correct is True
    assert base.test_pool_target_size == 40


def test_unknown_key_rejected():
    with pytest.raises(InvalidConfigError, match="bogus"):
        apply_updates(Configuration(), {"bogus": 1})


@pytest.mark.parametrize("updates", [
    {"snooze_incorrect_minutes": -1},
    {"pool_penalty_threshold": 0},
    {"promotion_consecutive_correct": 0},
    {"strategy_oldest_pct": 70, "strategy_demoted_pct": 40},
    {"test_pool_target_size": 2.5},
    {"pool_weight_test": "heavy"},
])
def test_invalid_values_rejected(updates):
    with pytest.raises(InvalidConfigError):
        apply_updates(Configuration(), updates)


def test_validate_accepts_defaults():
    assert validate_config(Configuration()) == Configuration()


def test_config_from_dict_ignores_stale_keys():
    c = config_from_dict({"id": "global", "pool_selection_test_upper": 60, "pool_weight_master": 2})
    assert c.pool_weight_master == 2


def test_load_config_file(tmp_path):
    f = tmp_path / "settings.yaml"
    f.write_text("test_pool_target_size: 10\nsnooze_test_correct_minutes: 7\n")
    assert load_config_file(str(f)) == {"test_pool_target_size": 10, "snooze_test_correct_minutes": 7}


def test_load_config_file_rejects_non_mapping(tmp_path):
    f = tmp_path / "settings.yaml"
    f.write_text("- 1\n- 2\n")
    with pytest.raises(InvalidConfigError):
        load_config_file(str(f))


@pytest.mark.parametrize("updates", [
    {"snooze_incorrect_minutes": "inf"},
    {"snooze_master_correct_days": float("inf")},
    {"pool_weight_test": "nan"},
    {"strategy_oldest_pct": float("nan")},
    {"test_pool_target_size": "-inf"},
])
def test_non_finite_values_rejected(updates):
    with pytest.raises(InvalidConfigError, match="finite"):
        apply_updates(Configuration(), updates)


def test_validate_rejects_non_finite_instance():
    with pytest.raises(InvalidConfigError, match="finite"):
        validate_config(Configuration(pool_weight_master=float("inf")))


def test_load_config_file_rejects_yaml_infinity(tmp_path):
    f = tmp_path / "settings.yaml"
    f.write_text("snooze_incorrect_minutes: .inf\n")
    with pytest.raises(InvalidConfigError):
        load_config_file(str(f))

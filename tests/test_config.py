import pytest

from derby_sim import config


def test_dotted_lookup():
    assert config.get_config("race_engine.timestep") == pytest.approx(1.0 / 15.0)
    assert config.get_config("builder.use_default_pacer") is True


def test_missing_keys_fall_back_to_default():
    assert config.get_config("race_engine.nope", 5) == 5
    assert config.get_config("nope.at.all") is None
    # walking into a scalar
    assert config.get_config("race_engine.timestep.value", "x") == "x"


def test_missing_config_uses_defaults(monkeypatch):
    monkeypatch.setattr(config, "SIM_CONFIG", None)
    assert config.get_config("race_engine.timestep", 0.05) == 0.05


def test_load_config_failures_return_none(tmp_path):
    assert config.load_config(tmp_path / "missing.json") is None
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert config.load_config(broken) is None
    good = tmp_path / "good.json"
    good.write_text('{"race_engine": {"legacy_mode": true}}', encoding="utf-8")
    assert config.load_config(good) == {"race_engine": {"legacy_mode": True}}


@pytest.mark.parametrize("value, expected", [("1", True), ("TRUE", True), ("on", True), ("0", False), ("no", False), ("", False)])
def test_legacy_mode_env_override(monkeypatch, value, expected):
    monkeypatch.setenv("DERBY_SIM_LEGACY_MODE", value)
    assert config.legacy_mode_enabled() is expected


def test_legacy_mode_from_config(monkeypatch):
    monkeypatch.delenv("DERBY_SIM_LEGACY_MODE", raising=False)
    assert config.legacy_mode_enabled() is False
    monkeypatch.setattr(config, "SIM_CONFIG", {"race_engine": {"legacy_mode": True}})
    assert config.legacy_mode_enabled() is True

"""
tests/test_config.py — YAML Config Loader
==========================================
"""

from __future__ import annotations

import pytest

from gamepulse.config import GamePulseConfig, TrackingConfig, load_config

MINIMAL = """\
community_name: Raid Night
bot_prefix: "!"
"""


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:

    def test_minimal_file_uses_tracking_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))

        assert isinstance(cfg, GamePulseConfig)
        assert cfg.community_name == "Raid Night"
        assert cfg.bot_prefix == "!"
        assert cfg.guild_id is None
        assert cfg.tracking == TrackingConfig()
        assert cfg.tracking.max_session_seconds == 86400
        assert cfg.tracking.flush_interval_seconds == 30

    def test_tracking_overrides(self, tmp_path):
        body = MINIMAL + (
            "guild_id: 123456789012345678\n"
            "tracking:\n"
            "  flush_interval_seconds: 10\n"
            "  rollup_hour_utc: 0\n"
            "  max_session_seconds: 3600\n"
        )
        cfg = load_config(_write(tmp_path, body))

        assert cfg.guild_id == 123456789012345678
        assert cfg.tracking.flush_interval_seconds == 10
        assert cfg.tracking.rollup_hour_utc == 0
        assert cfg.tracking.max_session_seconds == 3600
        # Untouched keys keep their defaults
        assert cfg.tracking.sweep_interval_minutes == 15
        assert cfg.tracking.default_source == "presence"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "community_name: Raid Night\n"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, ""))

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_rollup_hour_out_of_range(self, tmp_path, hour):
        body = MINIMAL + f"tracking:\n  rollup_hour_utc: {hour}\n"
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, body))

    def test_config_is_frozen(self, tmp_path):
        cfg = load_config(_write(tmp_path, MINIMAL))
        with pytest.raises(AttributeError):
            cfg.bot_prefix = "?"

"""Tests for settings parsing and the TOML store configuration."""

import pytest

from hilo.config import (
    CONFIG_FILENAME,
    CleanupRule,
    ProviderConfig,
    Settings,
    StoreConfig,
    detect_default_providers,
    load_config,
    load_or_create_config,
    parse_settings,
    save_config,
)


class TestParseSettings:

    def test_defaults(self):
        s = parse_settings({})
        assert s.visible_turns == 20
        assert s.check_interval == 20
        assert s.volume_token_threshold == 8000
        assert s.task_cooldown == 5
        assert s.mini_summary_depth == 9999
        assert s.mini_summary_start_order == 10000
        assert s.volume_start_order == 100
        assert s.auto_mini_summary is True
        assert s.no_merge_marker_value == "<|no-trans|>"

    def test_values_are_clamped(self):
        s = parse_settings({
            "visible_turns": 0,
            "check_interval": 1,
            "volume_token_threshold": 999999,
            "task_cooldown": -3,
            "ignore_turns": 5000,
        })
        assert s.visible_turns == 1
        assert s.check_interval == 5
        assert s.volume_token_threshold == 50000
        assert s.task_cooldown == 0
        assert s.ignore_turns == 1000

    def test_numeric_strings_are_coerced(self):
        assert parse_settings({"visible_turns": "12"}).visible_turns == 12

    def test_bad_value_falls_back_to_default(self, caplog):
        s = parse_settings({"check_interval": "often"})
        assert s.check_interval == 20
        assert "check_interval" in caplog.text

    def test_bool_coercion(self):
        s = parse_settings({"deferred_summary": "yes", "auto_volume_summary": 0})
        assert s.deferred_summary is True
        assert s.auto_volume_summary is False

    def test_cleanup_rules_without_pattern_are_dropped(self):
        s = parse_settings({"cleanup": [
            {"pattern": "<[^>]+>"},
            {"flags": "g"},
            "not a table",
        ]})
        assert s.cleanup == [CleanupRule(pattern="<[^>]+>", flags="g", replacement="")]

    def test_capture_tags_need_both_delimiters(self):
        s = parse_settings({"capture_tags": [
            {"start_tag": "<story>", "end_tag": "</story>"},
            {"start_tag": "<x>"},
        ]})
        assert len(s.capture_tags) == 1
        assert s.capture_tags[0].end_tag == "</story>"

    def test_order_helpers(self):
        s = Settings(mini_summary_start_order=10000, volume_start_order=100)
        assert s.mini_summary_order(7) == 10007
        assert s.volume_order(2) == 102


class TestProviderDetection:

    def test_passthrough_without_keys(self):
        providers = detect_default_providers()
        assert providers["generation"].name == "passthrough"
        assert providers["fallback"] is None

    def test_anthropic_preferred(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        assert detect_default_providers()["generation"].name == "anthropic"

    def test_openai_backs_up_anthropic(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-oai")
        providers = detect_default_providers()
        assert providers["generation"].name == "anthropic"
        assert providers["fallback"].name == "openai"


class TestLoadSave:

    def test_round_trip(self, tmp_path):
        config = StoreConfig(
            path=tmp_path,
            settings=Settings(
                visible_turns=8,
                cleanup=[CleanupRule(pattern=r"\[OOC.*?\]", flags="gi")],
            ),
            generation=ProviderConfig("openai", {"model": "my-model", "base_url": "http://localhost:8000/v1"}),
            fallback=ProviderConfig("anthropic"),
        )
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.settings.visible_turns == 8
        assert loaded.settings.cleanup[0].flags == "gi"
        assert loaded.generation.name == "openai"
        assert loaded.generation.params["base_url"] == "http://localhost:8000/v1"
        assert loaded.fallback.name == "anthropic"

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[settings\nvisible_turns = ")
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_hand_edited_values_are_clamped_on_load(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            "[settings]\nvisible_turns = 1000\n\n[generation]\nname = \"passthrough\"\n"
        )
        assert load_config(tmp_path).settings.visible_turns == 100

    def test_load_or_create_writes_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)
        assert config.exists()
        assert config.generation.name == "passthrough"
        assert load_or_create_config(tmp_path).created == config.created

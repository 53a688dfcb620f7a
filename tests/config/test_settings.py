"""Tests for KernelSettings loading (stock_kernel/config.py)."""

import pytest
import yaml

from stock_kernel.config import KernelSettings, load_settings, load_yaml_settings


class TestKernelSettings:

    def test_defaults(self):
        settings = KernelSettings()
        assert settings.lock_timeout_ms == 5000
        assert settings.conflict_retries == 3
        assert settings.database_url.startswith("postgresql://")

    def test_order_number_format(self):
        settings = KernelSettings(order_number_prefix="SUC-", order_number_width=4)
        assert settings.format_order_number(7) == "SUC-0007"
        assert KernelSettings().format_order_number(123) == "ORD-000123"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"database_url": ""},
            {"lock_timeout_ms": -1},
            {"conflict_retries": -1},
            {"order_number_width": 0},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            KernelSettings(**kwargs)


class TestLoadSettings:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "database_url": "sqlite:///stock.db",
                    "lock_timeout_ms": 250,
                    "echo_sql": True,
                }
            )
        )
        settings = load_settings(path, env={})
        assert settings.database_url == "sqlite:///stock.db"
        assert settings.lock_timeout_ms == 250
        assert settings.echo_sql is True

    def test_config_path_from_environment(self, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text("conflict_retries: 0\n")
        settings = load_settings(env={"STOCK_KERNEL_CONFIG": str(path)})
        assert settings.conflict_retries == 0

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text("lock_timeout_ms: 250\n")
        settings = load_settings(
            path,
            env={
                "STOCK_KERNEL_LOCK_TIMEOUT_MS": "900",
                "STOCK_KERNEL_ECHO_SQL": "yes",
                "STOCK_KERNEL_LOG_LEVEL": "DEBUG",
            },
        )
        assert settings.lock_timeout_ms == 900
        assert settings.echo_sql is True
        assert settings.log_level == "DEBUG"

    def test_empty_environment_values_are_ignored(self):
        settings = load_settings(env={"STOCK_KERNEL_DATABASE_URL": ""})
        assert settings.database_url == KernelSettings().database_url

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text("lock_timeout: 10\n")
        with pytest.raises(ValueError, match="lock_timeout"):
            load_settings(path, env={})

    def test_bad_integer_rejected(self):
        with pytest.raises(ValueError, match="lock_timeout_ms"):
            load_settings(env={"STOCK_KERNEL_LOCK_TIMEOUT_MS": "soon"})

    def test_non_mapping_yaml_rejected(self, tmp_path):
        path = tmp_path / "kernel.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_settings(path)

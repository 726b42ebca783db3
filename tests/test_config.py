"""
Configuration tests.
"""

import logging

import pytest
import yaml

from licensing.config import ConfigValue, LicensingConfig
from licensing.errors import ConfigError


class TestConfigValue:

    def test_default(self):
        assert ConfigValue(default=3).get() == 3

    def test_set(self):
        v = ConfigValue(default="a")
        v.set("b")
        assert v.get() == "b"

    def test_validator(self):
        v = ConfigValue(default=1, validator=lambda x: x > 0)
        with pytest.raises(ConfigError):
            v.set(0)

    def test_env_overrides(self, monkeypatch):
        v = ConfigValue(default=False, env_var="LICENSING_TEST_FLAG")
        v.set(False)
        monkeypatch.setenv("LICENSING_TEST_FLAG", "yes")
        assert v.get() is True

    def test_env_int(self, monkeypatch):
        monkeypatch.setenv("LICENSING_TEST_INT", "12")
        assert ConfigValue(default=0, env_var="LICENSING_TEST_INT").get() == 12


class TestLicensingConfig:

    def test_defaults(self):
        config = LicensingConfig()
        assert config.get("keys.private_key_path") == ""
        assert config.get("output.pretty") is True
        assert config.get("observability.log_level") == "warning"
        assert config.observability.python_level() == logging.WARNING
        assert config.validate() == []

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "licensing.yaml"
        path.write_text(yaml.safe_dump({
            "keys": {"private_key_path": "k.pem", "public_key_path": "p.pem"},
            "output": {"pretty": False},
            "observability": {"log_level": "debug"},
        }), encoding="utf-8")
        config = LicensingConfig.load(path)
        assert config.keys.private_key_path.get() == "k.pem"
        assert config.keys.public_key_path.get() == "p.pem"
        assert config.output.pretty.get() is False
        assert config.observability.python_level() == logging.DEBUG

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "licensing.yaml"
        path.write_text("keys:\n  public_key_path: file.pem\n", encoding="utf-8")
        monkeypatch.setenv("LICENSING_PUBLIC_KEY", "env.pem")
        assert LicensingConfig.load(path).get("keys.public_key_path") == "env.pem"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "licensing.yaml"
        path.write_text("", encoding="utf-8")
        assert LicensingConfig.load(path).get("output.pretty") is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            LicensingConfig.load(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "licensing.yaml"
        path.write_text("keys: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError):
            LicensingConfig.load(path)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "licensing.yaml"
        path.write_text("keys:\n  hsm_slot: 3\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc:
            LicensingConfig.load(path)
        assert exc.value.key == "keys.hsm_slot"

    def test_bad_log_level(self):
        config = LicensingConfig()
        with pytest.raises(ConfigError):
            config.set("observability.log_level", "loud")

    def test_bad_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LICENSING_LOG_LEVEL", "loud")
        errors = LicensingConfig().validate()
        assert errors and errors[0].startswith("observability.log_level")

    def test_set_and_get_paths(self):
        config = LicensingConfig()
        config.set("keys.private_key_path", "issuer.pem")
        assert config.get("keys.private_key_path") == "issuer.pem"
        with pytest.raises(ConfigError):
            config.get("keys.nope")
        with pytest.raises(ConfigError):
            config.set("keys", "x")

    def test_passphrase_masked(self, monkeypatch):
        monkeypatch.setenv("LICENSING_PASSPHRASE", "hunter2")
        config = LicensingConfig()
        assert config.keys.passphrase.get() == "hunter2"
        assert config.to_dict()["keys"]["passphrase"] == "***"
        assert "hunter2" not in config.to_yaml()

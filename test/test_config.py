# test/test_config.py
from pathlib import Path

import pytest

from reportflow.config import Config
from reportflow.exceptions import ValidationError

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "pipeline_config.yaml"

CONFIG_TEXT = """
loader:
  timeout: 5
output:
  dir: reports
reports:
  daily:
    sources:
      totals:
        path: totals.csv
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("REPORTFLOW_TIMEOUT", "REPORTFLOW_OUTPUT_DIR", "LOG_LEVEL"):
        # setenv first so teardown also removes values loaded from .env files
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pipeline_config.yaml"
    path.write_text(CONFIG_TEXT)
    return path


def _config(path, tmp_path):
    return Config(str(path), env_file=str(tmp_path / "missing.env"))


def test_yaml_merged_over_defaults(config_file, tmp_path):
    config = _config(config_file, tmp_path)

    assert config.get("loader.timeout") == 5
    assert config.get("output.dir") == "reports"
    assert config.get("output.plots") is True
    assert config.get("logging.level") == "INFO"
    assert config.get("nonexistent.key", "default") == "default"


def test_set_dot_notation(config_file, tmp_path):
    config = _config(config_file, tmp_path)
    config.set("output.visualization.dpi", 72)
    assert config.get("output.visualization") == {"dpi": 72}


def test_reports(config_file, tmp_path):
    config = _config(config_file, tmp_path)

    assert config.report_names() == ["daily"]
    report = config.get_report("daily")
    report["sources"]["totals"]["path"] = "changed.csv"
    assert config.get_report("daily")["sources"]["totals"]["path"] == "totals.csv"


def test_unknown_report(config_file, tmp_path):
    with pytest.raises(ValidationError):
        _config(config_file, tmp_path).get_report("weekly")


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        _config(tmp_path / "nope.yaml", tmp_path)


def test_env_overrides(config_file, tmp_path, monkeypatch):
    monkeypatch.setenv("REPORTFLOW_TIMEOUT", "2.5")
    monkeypatch.setenv("REPORTFLOW_OUTPUT_DIR", "/tmp/out")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = _config(config_file, tmp_path)

    assert config.get("loader.timeout") == 2.5
    assert config.get("output.dir") == "/tmp/out"
    assert config.get("logging.level") == "DEBUG"


def test_env_file(config_file, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("REPORTFLOW_TIMEOUT=7\n")

    config = Config(str(config_file), env_file=str(env_file))

    assert config.get("loader.timeout") == 7.0


def test_bad_timeout_env(config_file, tmp_path, monkeypatch):
    monkeypatch.setenv("REPORTFLOW_TIMEOUT", "soon")
    with pytest.raises(ValidationError):
        _config(config_file, tmp_path)


def test_shipped_config_defines_both_reports(tmp_path):
    config = _config(SHIPPED_CONFIG, tmp_path)
    assert set(config.report_names()) >= {"covid_us", "nypd_shootings"}
    assert config.get_report("nypd_shootings")["model"]["family"] == "logistic"


def test_default_config_from_working_directory(tmp_path, monkeypatch):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "pipeline_config.yaml").write_text(CONFIG_TEXT)
    monkeypatch.chdir(tmp_path)

    config = Config()

    assert config.config_path == tmp_path / "config" / "pipeline_config.yaml"
    assert config.report_names() == ["daily"]

# test/test_utils.py
import json
import logging

import pandas as pd
import pytest

from reportflow.utils.file_utils import load_config, save_csv, save_json
from reportflow.utils.logging_utils import get_logger, set_level, setup_logger


def test_get_logger_is_under_package_logger():
    assert get_logger("reportflow.stage1.loader").name == "reportflow.stage1.loader"
    assert get_logger("custom").name == "reportflow.custom"


def test_setup_logger_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logger("reportflow.test_file", log_file=str(log_file), colorize=False)

    logger.info("Loaded 3 rows")
    for handler in logger.handlers:
        handler.flush()

    assert "Loaded 3 rows" in log_file.read_text()
    assert len(setup_logger("reportflow.test_file").handlers) == 1


def test_set_level():
    set_level("DEBUG")
    assert logging.getLogger("reportflow").level == logging.DEBUG
    set_level("INFO")


def test_load_config(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("loader:\n  timeout: 3\n")
    assert load_config(path) == {"loader": {"timeout": 3}}

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_config(empty) == {}

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_save_json_and_csv(tmp_path):
    payload = {"when": pd.Timestamp("2020-01-01"), "n": 3}
    json_path = save_json(payload, tmp_path / "nested" / "out.json")
    assert json.loads(json_path.read_text()) == {"when": "2020-01-01 00:00:00", "n": 3}

    csv_path = save_csv(pd.DataFrame({"a": [1, 2]}), tmp_path / "nested" / "out.csv")
    assert pd.read_csv(csv_path)["a"].tolist() == [1, 2]

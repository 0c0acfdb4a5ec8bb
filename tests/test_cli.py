import copy
import json
import logging
from pathlib import Path

import pytest

from docpress.cli import build_parser, main
from docpress.config import DEFAULT_CONFIG
from docpress.errors import JobNotFoundError
from docpress.storage import create_job, get_job, init_db

EXAMPLE_WIDGETS = Path(__file__).parents[1] / "config" / "widgets.example.yml"


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state.sqlite3")


def _run(db_path, *args):
    return main(["--db", db_path, *args])


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_config_init_and_show(db_path, caplog):
    caplog.set_level(logging.INFO)

    assert _run(db_path, "config", "init") == 0
    assert _run(db_path, "config", "show") == 0
    assert '"universal_bottom_widget_id": "universal-cta-bottom"' in caplog.text


def test_config_set_validates(db_path, tmp_path):
    good = copy.deepcopy(DEFAULT_CONFIG)
    good["paths"]["widgets_file"] = str(EXAMPLE_WIDGETS)
    good_path = tmp_path / "good.json"
    good_path.write_text(json.dumps(good), encoding="utf-8")
    bad_path = tmp_path / "bad.json"
    bad_path.write_text(json.dumps({"app": {}}), encoding="utf-8")

    assert _run(db_path, "config", "set", str(good_path)) == 0
    assert _run(db_path, "config", "set", str(bad_path)) == 1
    assert _run(db_path, "config", "set", str(tmp_path / "missing.json")) == 1


def test_widgets_list(db_path, tmp_path, caplog):
    caplog.set_level(logging.INFO)
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["paths"]["widgets_file"] = str(EXAMPLE_WIDGETS)
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")
    _run(db_path, "config", "set", str(path))

    assert _run(db_path, "widgets", "list") == 0
    assert "widget_id=course-python-top" in caplog.text


def test_jobs_show_and_delete(db_path, caplog):
    caplog.set_level(logging.INFO)
    conn = init_db(db_path)
    job = create_job(conn, "file-1", "1", "Post.docx")

    assert _run(db_path, "jobs", "list") == 0
    assert f"job_id={job.id}" in caplog.text
    assert _run(db_path, "jobs", "show", job.id) == 0
    assert _run(db_path, "jobs", "delete", job.id) == 0
    assert _run(db_path, "jobs", "show", job.id) == 1
    assert _run(db_path, "jobs", "delete", job.id) == 1
    with pytest.raises(JobNotFoundError):
        get_job(conn, job.id)
    conn.close()


def test_run_once_without_configuration_fails(db_path, caplog):
    caplog.set_level(logging.INFO)

    assert _run(db_path, "run-once") == 1
    assert "drive.folder_id is not configured" in caplog.text

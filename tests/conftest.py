# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pytest

from emigrant_pipeline.logging.init import reset_logging
from emigrant_pipeline.storage.collection import InMemoryStore


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    # the CLI logger binds sys.stdout at setup time; capsys swaps it per test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """store:
  backend: memory
  table: documents
  database:
    host: localhost
    port: 5432
    user: appuser
    password: secret
    database: appdb
forecast:
  lookback: 3
  epochs: 2
  batch_size: 4
  min_years: 7
  horizon: 3
artifact_dir: ./models
logs_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "pipeline.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path):
    """Factory: write_csv("name.csv", "a,b\\n1,2\\n") -> Path under data/."""
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def gender_csv_text() -> str:
    return (
        "Year,Male,Female\n"
        "2015,\"1,200\",1300\n"
        "2016,1250,1350\n"
        "Total,2450,2650\n"
    )


@pytest.fixture()
def total_transposed_csv_text() -> str:
    # ten years of a rising series split over two regions plus excluded rows
    years = list(range(2005, 2015))
    header = "REGION," + ",".join(str(y) for y in years)
    north = "North," + ",".join(str(1000 + 100 * i) for i in range(len(years)))
    south = "South," + ",".join(str(500 + 50 * i) for i in range(len(years)))
    not_reported = "Not Reported," + ",".join("7" for _ in years)
    no_response = "No Response," + ",".join("3" for _ in years)
    return "\n".join([header, north, south, not_reported, no_response]) + "\n"


@pytest.fixture()
def education_csv_text() -> str:
    return (
        "EDUCATIONAL ATTAINMENT,2019,2020\n"
        "Elementary Level,10,20\n"
        "Elementary Graduate,5,5\n"
        "High School Level,7,8\n"
        "High School Graduate,3,2\n"
        "College Level,11,12\n"
        "College Graduate,9,8\n"
        "Post Graduate Level,1,1\n"
        "Post Graduate,2,3\n"
        "Not Reported,99,99\n"
    )


@pytest.fixture()
def occupation_csv_text() -> str:
    return (
        "MAJOR OCCUPATION,2019,2020,2021\n"
        "Professional,100,120,130\n"
        "Production Workers,50,0,40\n"
        "No Occupation Reported,500,600,700\n"
        "Not Reported,1,1,1\n"
    )

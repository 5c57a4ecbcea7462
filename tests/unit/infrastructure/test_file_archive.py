"""FileArchiveSink: file naming, policy-specific directories, one file per run."""

import json
from pathlib import Path

import pytest

from carshare_activity.application.repositories import ArchiveSink
from carshare_activity.infrastructure.archive.file_archive import FileArchiveSink


def test_file_sink_implements_archive_port(tmp_path):
    assert isinstance(FileArchiveSink(str(tmp_path)), ArchiveSink)


@pytest.mark.asyncio
async def test_write_to_default_directory(tmp_path):
    sink = FileArchiveSink(str(tmp_path / "archives"))
    location = await sink.write("error_logs_retention", {"policy": "error_logs_retention", "records": []})

    path = Path(location)
    assert path.parent == tmp_path / "archives"
    assert path.name.startswith("activity_error_logs_retention_")
    assert path.suffix == ".json"
    assert json.loads(path.read_text())["policy"] == "error_logs_retention"


@pytest.mark.asyncio
async def test_policy_location_is_a_directory(tmp_path):
    sink = FileArchiveSink(str(tmp_path))
    target = tmp_path / "nested" / "errors"
    location = await sink.write("p", {"recordCount": 0}, str(target))

    assert Path(location).parent == target
    assert json.loads(Path(location).read_text()) == {"recordCount": 0}


@pytest.mark.asyncio
async def test_repeated_writes_never_overwrite(tmp_path):
    sink = FileArchiveSink(str(tmp_path))
    first = await sink.write("p", {"records": ["first"]}, str(tmp_path / "errs"))
    second = await sink.write("p", {"records": ["second"]}, str(tmp_path / "errs"))

    assert first != second
    assert sorted(json.loads(Path(p).read_text())["records"][0] for p in (first, second)) == [
        "first",
        "second",
    ]

import json
import os
import threading

import pytest

from leadview.schemas.errors import SnapshotError
from leadview.services.snapshot_service import SnapshotService


@pytest.fixture
def snapshots(tmp_path):
    return SnapshotService(data_dir=str(tmp_path), ttl_seconds=300)


def test_load_csv_converts_blanks_to_none(snapshots, tmp_path):
    path = tmp_path / "contacts.csv"
    path.write_text("id,company,epv\n1,Acme,1500\n2,,\n")

    records = snapshots.load(str(path))

    assert records[0]["company"] == "Acme"
    assert records[1]["company"] is None
    assert records[1]["epv"] is None

def test_load_csv_keeps_cell_text(snapshots, tmp_path):
    path = tmp_path / "contacts.csv"
    path.write_text("id,company,phone\n1,NA,0123456\n2,null,\n")

    records = snapshots.load(str(path))

    assert records[0] == {"id": "1", "company": "NA", "phone": "0123456"}
    assert records[1]["company"] == "null"
    assert records[1]["phone"] is None

def test_load_json_envelope(snapshots, tmp_path):
    path = tmp_path / "contacts.json"
    path.write_text(json.dumps({"data": [{"id": 1, "email": "a@b.co"}, "noise"]}))

    assert snapshots.load(str(path)) == [{"id": 1, "email": "a@b.co"}]

def test_relative_paths_resolve_against_data_dir(snapshots, tmp_path):
    (tmp_path / "leads.jsonl").write_text('{"id": 1}\n{"id": 2}\n')

    assert [row["id"] for row in snapshots.load("leads.jsonl")] == [1, 2]

def test_cached_until_file_changes(snapshots, tmp_path):
    path = tmp_path / "leads.jsonl"
    path.write_text('{"id": 1}\n')
    snapshots.load(str(path))
    snapshots.load(str(path))
    assert snapshots.stats == {"hits": 1, "misses": 1}

    path.write_text('{"id": 1}\n{"id": 2}\n')
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert len(snapshots.load(str(path))) == 2
    assert snapshots.stats["misses"] == 2

def test_expired_entries_are_reloaded(tmp_path):
    snapshots = SnapshotService(data_dir=str(tmp_path), ttl_seconds=0)
    path = tmp_path / "leads.jsonl"
    path.write_text('{"id": 1}\n')

    snapshots.load(str(path))
    snapshots.load(str(path))

    assert snapshots.stats["misses"] == 2

def test_invalidate_all(snapshots, tmp_path):
    for name in ("a.jsonl", "b.jsonl"):
        (tmp_path / name).write_text('{"id": 1}\n')
        snapshots.load(name)

    assert snapshots.invalidate() == 2

@pytest.mark.parametrize("name,content,error_code", [
    ("contacts.parquet", "", "unsupported_format"),
    ("contacts.json", '{"rows": 1}', "invalid_content"),
    ("contacts.json", "{not json", "invalid_content"),
])
def test_load_errors(snapshots, tmp_path, name, content, error_code):
    path = tmp_path / name
    path.write_text(content)

    with pytest.raises(SnapshotError) as exc_info:
        snapshots.load(str(path))

    assert exc_info.value.error_code == error_code

def test_missing_file(snapshots):
    with pytest.raises(SnapshotError) as exc_info:
        snapshots.load("nowhere.csv")

    assert exc_info.value.error_code == "file_not_found"

def test_slow_read_does_not_block_cached_snapshots(snapshots, tmp_path, monkeypatch):
    fast = tmp_path / "fast.jsonl"
    fast.write_text('{"id": 1}\n')
    slow = tmp_path / "slow.jsonl"
    slow.write_text('{"id": 2}\n')
    snapshots.load(str(fast))

    started, release = threading.Event(), threading.Event()
    read_frame = snapshots._read_frame

    def blocking_read(path):
        if path.name == "slow.jsonl":
            started.set()
            release.wait(timeout=5)
        return read_frame(path)

    monkeypatch.setattr(snapshots, "_read_frame", blocking_read)
    loaded = {}
    worker = threading.Thread(target=snapshots.load, args=(str(slow),))
    reader = threading.Thread(target=lambda: loaded.update(records=snapshots.load(str(fast))))

    worker.start()
    assert started.wait(timeout=5)
    reader.start()
    reader.join(timeout=2)
    blocked = reader.is_alive()
    release.set()
    worker.join(timeout=5)
    reader.join(timeout=5)

    assert not blocked
    assert loaded["records"] == [{"id": 1}]
    assert snapshots.stats == {"hits": 1, "misses": 2}
    assert len(snapshots.load(str(slow))) == 1

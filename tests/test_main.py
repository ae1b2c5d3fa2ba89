"""Tests for the command-line front end."""
import json

import pytest

from scoutai.main import load_photos, main

PHOTOS = [
    {
        "id": f"p{i}",
        "project_id": "proj-1",
        "captured_at": 1_700_000_000 + i * 60,
        "coordinates": [{"latitude": 40.7128, "longitude": -74.0060}],
        "tags": ["Roof"],
        "description": "North roof flashing detail",
    }
    for i in range(3)
]


@pytest.fixture
def photos_file(tmp_path):
    path = tmp_path / "photos.json"
    path.write_text(json.dumps(PHOTOS))
    return path


def run(tmp_path, *args):
    return main([*args, "--db", str(tmp_path / "prefs.db"), "--log-dir", str(tmp_path / "logs")])


def test_json_output(tmp_path, photos_file, capsys):
    assert run(tmp_path, str(photos_file), "--json", "--user", "cli-user") == 0
    out = json.loads(capsys.readouterr().out)
    assert out["actionable"]
    assert out["recommendations"][0]["groupType"] == "retry_shots"
    assert out["recommendations"][0]["keep"] == ["p2"]


def test_text_output(tmp_path, photos_file, capsys):
    assert run(tmp_path, str(photos_file)) == 0
    out = capsys.readouterr().out
    assert "retry shots" in out
    assert "archive: p0, p1" in out


def test_threshold_is_stored(tmp_path, photos_file):
    assert run(tmp_path, str(photos_file), "--threshold", "0.99") == 0
    from scoutai.core.preferences_store import SqliteKeyValueStore
    store = SqliteKeyValueStore(str(tmp_path / "prefs.db"))
    assert '"qualityThreshold":0.99' in store.get("scoutai-preferences-local")
    store.close()


def test_unknown_layer_exits_2(tmp_path, photos_file, capsys):
    assert run(tmp_path, str(photos_file), "--layers", "metadata,telepathy") == 2
    assert "Unknown similarity layer" in capsys.readouterr().err


def test_bad_threshold_exits_2(tmp_path, photos_file):
    assert run(tmp_path, str(photos_file), "--threshold", "1.5") == 2


def test_missing_file_exits_2(tmp_path):
    assert run(tmp_path, str(tmp_path / "nope.json")) == 2


def test_load_photos_accepts_wrapped_list(tmp_path):
    path = tmp_path / "wrapped.json"
    path.write_text(json.dumps({"photos": PHOTOS[:1]}))
    assert [p.id for p in load_photos(str(path))] == ["p0"]

from __future__ import annotations

import json

import pytest

from mamflow import cli
from tests.fakes import video_metadata


def test_segments_command_prints_clipped_windows(capsys):
    cli.main(["segments", "--duration", "125", "--segment", "60"])

    out = capsys.readouterr().out
    assert "3 segment(s) of 60s" in out
    assert "[120:0_125:0)" in out


def test_segments_command_rejects_non_positive_duration():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["segments", "--duration", "0"])
    assert excinfo.value.code == 2


def test_inspect_command_prints_metadata(monkeypatch, tmp_path, capsys):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")

    async def fake_inspect(self, source):
        assert source == str(media.resolve())
        return video_metadata(12.0)

    monkeypatch.setattr(cli.Transcoder, "inspect_media", fake_inspect)

    cli.main(["inspect", "--file", str(media)])

    payload = json.loads(capsys.readouterr().out)
    assert payload["duration_s"] == 12.0
    assert payload["video"]["codec"] == "h264"


def test_inspect_command_missing_file(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["inspect", "--file", str(tmp_path / "missing.mp4")])
    assert excinfo.value.code == 2


def test_check_fails_without_tools(monkeypatch):
    monkeypatch.setattr(cli, "binary_available", lambda binary: False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--check"])
    assert excinfo.value.code == 1


def test_no_command_prints_help():
    with pytest.raises(SystemExit):
        cli.main([])

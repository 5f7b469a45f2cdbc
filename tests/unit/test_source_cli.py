import json

from scripts.source_cli import as_uri, main


def test_as_uri_accepts_paths_and_uris(tmp_path):
    assert as_uri("https://example.com") == "https://example.com"
    assert as_uri(str(tmp_path / "a.txt")).startswith("file://")


def test_hash_command(tmp_path, capsys):
    path = tmp_path / "a.txt"
    path.write_text("abc")

    assert main(["hash", str(path)]) == 0

    assert capsys.readouterr().out.strip().startswith("sha256:")


def test_metadata_command(tmp_path, capsys):
    path = tmp_path / "a.txt"
    path.touch()

    assert main(["metadata", str(path)]) == 0

    record = json.loads(capsys.readouterr().out)
    assert record["size"] == 0
    assert record["is_file"] is True


def test_info_command(capsys):
    assert main(["info"]) == 0

    info = json.loads(capsys.readouterr().out)
    assert "file" in info["schemes"]


def test_errors_exit_non_zero(tmp_path, capsys):
    assert main(["hash", str(tmp_path / "missing")]) == 1

    assert "SourceIOError" in capsys.readouterr().err

import os
import stat
from datetime import datetime

import pytest

from domains.source_registry.errors import SourceIOError
from domains.source_registry.metadata import (
    DEFAULT_MIME_TYPE,
    extract_file_metadata,
    extract_file_metadata_sync,
    guess_mime_type,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="requires POSIX symlinks and ownership")


@pytest.mark.asyncio
async def test_empty_file(tmp_path):
    path = tmp_path / "a.txt"
    path.touch()

    record = await extract_file_metadata(path)

    assert record.name == "a.txt"
    assert record.size == 0
    assert record.is_file is True
    assert record.is_directory is False
    assert record.is_symlink is False
    assert record.extension == ".txt"
    assert record.mime_type == "text/plain"


def test_directory(tmp_path):
    folder = tmp_path / "folder"
    folder.mkdir()

    record = extract_file_metadata_sync(folder)

    assert record.is_directory is True
    assert record.is_file is False
    assert record.extension == ""
    assert stat.S_ISDIR(record.permissions)


def test_timestamps_are_iso(tmp_path):
    path = tmp_path / "notes.md"
    path.write_text("# notes")

    record = extract_file_metadata_sync(path)

    modified = datetime.fromisoformat(record.modified_at)
    assert modified.tzinfo is not None
    assert abs(modified.timestamp() - path.stat().st_mtime) < 1
    datetime.fromisoformat(record.created_at)


@pytest.mark.parametrize(
    "name, extension",
    [
        ("archive.tar.gz", ".gz"),
        ("Makefile", ""),
        (".bashrc", ""),
        ("photo.JPG", ".JPG"),
    ],
)
def test_extension_is_last_suffix(tmp_path, name, extension):
    path = tmp_path / name
    path.write_bytes(b"")

    assert extract_file_metadata_sync(path).extension == extension


def test_unknown_extension_falls_back_to_octet_stream():
    assert guess_mime_type("blob.zzqx") == DEFAULT_MIME_TYPE
    assert guess_mime_type("README") == DEFAULT_MIME_TYPE
    assert guess_mime_type("page.html") == "text/html"


def test_missing_path_reports_path_and_cause(tmp_path):
    missing = tmp_path / "gone.txt"

    with pytest.raises(SourceIOError) as exc_info:
        extract_file_metadata_sync(missing)

    message = str(exc_info.value)
    assert str(missing) in message
    assert "No such file" in message or "cannot find" in message


@posix_only
def test_symlink_flag_comes_from_link_other_fields_from_target(tmp_path):
    target = tmp_path / "target.json"
    target.write_text('{"a": 1}')
    link = tmp_path / "link"
    link.symlink_to(target)

    record = extract_file_metadata_sync(link)

    assert record.is_symlink is True
    assert record.is_file is True
    assert record.size == target.stat().st_size
    assert record.name == "link"


@posix_only
def test_dangling_symlink_uses_link_itself(tmp_path):
    link = tmp_path / "dangling"
    link.symlink_to(tmp_path / "nowhere")

    record = extract_file_metadata_sync(link)

    assert record.is_symlink is True
    assert record.is_file is False
    assert record.is_directory is False


@posix_only
def test_ownership_present_on_posix(tmp_path):
    path = tmp_path / "owned"
    path.touch()

    payload = extract_file_metadata_sync(path).to_payload()

    assert payload["uid"] == os.getuid()
    assert payload["gid"] == path.stat().st_gid


def test_payload_omits_absent_ownership():
    from domains.source_registry.models import MetadataRecord

    record = MetadataRecord(
        name="remote",
        size=3,
        created_at="2024-01-01T00:00:00+00:00",
        modified_at="2024-01-01T00:00:00+00:00",
        etag="abc",
    )

    payload = record.to_payload()

    assert "uid" not in payload
    assert "gid" not in payload
    assert payload["etag"] == "abc"

"""Tests for previews and downloads of extracted files."""

import pytest
from PIL import Image

from conftest import make_image_bytes
from listings_composer.materialize import PreviewRegistry, materialize, save_file
from listings_composer.models import ExtractedFile


def _file(name, content, mime_type="image/jpeg"):
    return ExtractedFile(name=name, mime_type=mime_type, content=content, size=len(content))


def test_image_preview_is_a_bounded_thumbnail():
    content = make_image_bytes("JPEG", size=(400, 200))
    with PreviewRegistry(max_side=100) as registry:
        handle = registry.create(_file("listing_1_0.jpg", content))

        assert handle.uri.startswith("file://")
        assert handle.path.exists()
        with Image.open(handle.path) as image:
            assert image.size == (100, 50)


def test_non_image_preview_keeps_raw_bytes():
    with PreviewRegistry() as registry:
        handle = registry.create(_file("listing_1_0.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4"))

        assert handle.path.read_bytes() == b"\x00\x00\x00\x18ftypmp42"


def test_revoke_releases_the_handle_once():
    registry = PreviewRegistry()
    handle = registry.create(_file("listing_1_0.jpg", make_image_bytes()))

    registry.revoke(handle)
    registry.revoke(handle)

    assert not handle.path.exists()
    assert registry.active == []
    registry.close()


def test_close_releases_everything():
    registry = PreviewRegistry()
    handles = [registry.create(_file(f"listing_1_{i}.jpg", make_image_bytes())) for i in range(3)]
    root = handles[0].path.parent

    registry.close()

    assert registry.active == []
    assert not root.exists()


def test_save_uses_synthetic_name(tmp_path):
    file = _file("listing_1700000000000_3.png", make_image_bytes("PNG"))

    destination = save_file(file, tmp_path / "downloads")

    assert destination == tmp_path / "downloads" / "listing_1700000000000_3.png"
    assert destination.read_bytes() == file.content


def test_materialize_pairs_files_with_previews(tmp_path):
    files = [_file("listing_1_0.jpg", make_image_bytes()), _file("listing_1_1.jpg", make_image_bytes(color="green"))]
    with PreviewRegistry() as registry:
        items = materialize(files, registry)

        assert [item.file for item in items] == files
        assert len(registry.active) == 2
        saved = items[1].save(tmp_path)
        assert saved.read_bytes() == files[1].content


def test_materialize_revokes_previews_when_one_fails():
    files = [_file("listing_1_0.jpg", make_image_bytes()), _file("listing_1_1.jpg", make_image_bytes())]
    with PreviewRegistry() as registry:
        create = registry.create
        calls = []

        def _fail_second(file):
            calls.append(file.name)
            if len(calls) == 2:
                raise OSError("No space left on device")
            return create(file)

        registry.create = _fail_second
        with pytest.raises(OSError):
            materialize(files, registry)

        assert registry.active == []

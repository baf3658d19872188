"""Tests for the Pillow-backed local document host."""

import base64
import io
import threading
import zipfile
from urllib.parse import urlparse
from urllib.request import url2pathname

import pytest
from PIL import Image

from listings_composer.composer import build_page_element
from listings_composer.errors import EncodingError
from listings_composer.host import LocalDocumentHost
from listings_composer.models import ExportStatus, ImageElement


def _data_uri(jpeg_bytes):
    return "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes).decode("ascii")


@pytest.mark.asyncio
async def test_pages_are_rendered_full_bleed(tmp_path, jpeg_bytes):
    host = LocalDocumentHost(tmp_path, page_size=64)

    await host.insert_page("Sunny flat", [build_page_element(_data_uri(jpeg_bytes), 64)])

    assert len(host.pages) == 1
    page = host.pages[0]
    assert page.title == "Sunny flat"
    assert page.image.size == (64, 64)
    # Source image is solid red, so the fitted page has no white margin.
    assert page.image.getpixel((0, 0))[0] > 200
    assert page.image.getpixel((63, 63))[0] > 200
    context = await host.get_current_context()
    assert context.page_count == 1


@pytest.mark.asyncio
async def test_pages_render_in_a_worker_thread(tmp_path, jpeg_bytes, monkeypatch):
    host = LocalDocumentHost(tmp_path, page_size=32)
    render = host._render_page
    threads = []

    def _recording_render(title, elements):
        threads.append(threading.get_ident())
        return render(title, elements)

    monkeypatch.setattr(host, "_render_page", _recording_render)

    await host.insert_page("Loft", [build_page_element(_data_uri(jpeg_bytes), 32)])

    assert len(host.pages) == 1
    assert threads and threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_export_writes_zip_bundle(tmp_path, jpeg_bytes):
    host = LocalDocumentHost(tmp_path, page_size=32)
    for title in ("A", "B"):
        await host.insert_page(title, [build_page_element(_data_uri(jpeg_bytes), 32)])

    result = await host.request_export(accepted_file_types=("jpg", "png"))

    assert result.status is ExportStatus.COMPLETED
    assert len(result.bundle_urls) == 1
    bundle_path = url2pathname(urlparse(result.bundle_urls[0]).path)
    with zipfile.ZipFile(bundle_path) as archive:
        names = archive.namelist()
        assert names == ["pages/", "pages/01-a.png", "pages/02-b.png"]
        with Image.open(io.BytesIO(archive.read("pages/02-b.png"))) as image:
            assert image.size == (32, 32)


@pytest.mark.asyncio
async def test_export_falls_back_to_jpeg(tmp_path, jpeg_bytes):
    host = LocalDocumentHost(tmp_path, page_size=16)
    await host.insert_page("A", [build_page_element(_data_uri(jpeg_bytes), 16)])

    result = await host.request_export(accepted_file_types=("jpg", "mp4"))

    bundle_path = url2pathname(urlparse(result.bundle_urls[0]).path)
    with zipfile.ZipFile(bundle_path) as archive:
        assert archive.namelist()[-1].endswith(".jpg")


@pytest.mark.asyncio
async def test_export_without_pages_or_formats_fails(tmp_path, jpeg_bytes):
    host = LocalDocumentHost(tmp_path)
    assert (await host.request_export(accepted_file_types=("png",))).status is ExportStatus.FAILED

    await host.insert_page("A", [build_page_element(_data_uri(jpeg_bytes), 16)])
    assert (await host.request_export(accepted_file_types=("mp4",))).status is ExportStatus.FAILED


@pytest.mark.asyncio
async def test_closed_document_has_no_context(tmp_path):
    host = LocalDocumentHost(tmp_path)
    host.close()

    assert await host.get_current_context() is None
    with pytest.raises(RuntimeError):
        await host.insert_page("A", [])


@pytest.mark.asyncio
async def test_non_image_element_is_rejected(tmp_path):
    host = LocalDocumentHost(tmp_path)

    with pytest.raises(EncodingError):
        await host.insert_page("A", [ImageElement(source="data:text/plain;base64,aGVsbG8=")])
    assert host.pages == []

"""Tests for image decode, downscale and re-encode."""

import base64
import io

import pytest
from PIL import Image

from services.attachment_pipeline import (
    AttachmentPipeline,
    dimensions_of,
    scaled_dimensions,
    split_data_url,
    to_data_url,
)
from utils.errors import AttachmentError

from conftest import make_image_bytes


class TestScaledDimensions:
    @pytest.mark.parametrize("size,expected", [
        ((3000, 2000), (1600, 1067)),
        ((2000, 3000), (1067, 1600)),
        ((1600, 1600), (1600, 1600)),
        ((1601, 10), (1600, 10)),
        ((800, 600), (800, 600)),
        ((10000, 3), (1600, 1)),
    ])
    def test_fits_bound(self, size, expected):
        assert scaled_dimensions(size[0], size[1], 1600) == expected


class TestPipeline:
    def test_small_image_passes_through_unchanged(self):
        raw = make_image_bytes((640, 480), fmt="PNG")
        attachment = AttachmentPipeline().process_sync(raw)
        mime, payload = split_data_url(attachment.data_url)
        assert mime == "image/png"
        assert payload == raw
        assert attachment.created_at

    def test_large_image_is_downscaled_to_jpeg(self):
        raw = make_image_bytes((3000, 2000), fmt="PNG")
        attachment = AttachmentPipeline().process_sync(raw)
        assert attachment.data_url.startswith("data:image/jpeg;base64,")
        assert dimensions_of(attachment.data_url) == (1600, 1067)

    def test_scaling_is_idempotent_in_dimension(self):
        pipeline = AttachmentPipeline()
        first = pipeline.process_sync(make_image_bytes((2400, 1800), fmt="JPEG"))
        second = pipeline.process_sync(first.data_url)
        assert dimensions_of(first.data_url) == dimensions_of(second.data_url) == (1600, 1200)
        # Already within the bound, so the second pass keeps the payload.
        assert second.data_url == first.data_url

    def test_exif_orientation_is_applied_before_scaling(self):
        img = Image.new("RGB", (3000, 2000), (90, 120, 60))
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 degrees clockwise to display
        buf = io.BytesIO()
        img.save(buf, format="JPEG", exif=exif)

        attachment = AttachmentPipeline().process_sync(buf.getvalue())
        assert dimensions_of(attachment.data_url) == (1067, 1600)

    def test_transparent_image_is_flattened(self):
        raw = make_image_bytes((2000, 2000), fmt="PNG", mode="RGBA")
        attachment = AttachmentPipeline().process_sync(raw)
        _, payload = split_data_url(attachment.data_url)
        with Image.open(io.BytesIO(payload)) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"
            assert img.size == (1600, 1600)

    def test_custom_bound(self):
        attachment = AttachmentPipeline(max_dimension=100).process_sync(make_image_bytes((400, 200)))
        assert dimensions_of(attachment.data_url) == (100, 50)

    def test_bound_from_environment(self, monkeypatch):
        monkeypatch.setenv("IMAGE_MAX_DIMENSION", "320")
        monkeypatch.setenv("IMAGE_JPEG_QUALITY", "70")
        pipeline = AttachmentPipeline()
        assert pipeline.max_dimension == 320
        assert pipeline.quality == 70

    def test_corrupt_file_rejected(self):
        with pytest.raises(AttachmentError):
            AttachmentPipeline().process_sync(b"definitely not an image")

    def test_empty_file_rejected(self):
        with pytest.raises(AttachmentError):
            AttachmentPipeline().process_sync(b"")

    def test_bad_data_url_rejected(self):
        with pytest.raises(AttachmentError):
            AttachmentPipeline().process_sync("data:image/png;base64,@@@")

    @pytest.mark.asyncio
    async def test_async_process(self):
        attachment = await AttachmentPipeline().process(make_image_bytes((3000, 2000)))
        assert dimensions_of(attachment.data_url) == (1600, 1067)


class TestDataUrls:
    def test_round_trip(self):
        url = to_data_url(b"\x00\x01abc", "image/webp")
        assert url == "data:image/webp;base64," + base64.b64encode(b"\x00\x01abc").decode()
        assert split_data_url(url) == ("image/webp", b"\x00\x01abc")

    def test_non_base64_url_rejected(self):
        with pytest.raises(AttachmentError):
            split_data_url("data:text/plain,hello")

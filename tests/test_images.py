import io

import httpx
import pytest
from PIL import Image

from conftest import make_png
from roomrevamp.errors import ValidationError
from roomrevamp.images import (
    as_image_url,
    closest_dimensions,
    decode_data_uri,
    fit_to_sdxl,
    image_to_data_uri,
    load_image_bytes,
    sniff_mime,
    to_data_uri,
)
from roomrevamp.types import ImageReference


def test_to_data_uri_png():
    b = b"\x89PNG\r\n\x1a\n"
    uri = to_data_uri(b, "image/png")
    assert uri.startswith("data:image/png;base64,")
    assert decode_data_uri(uri) == b


def test_sniff_mime():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8)).save(buf, format="JPEG")
    assert sniff_mime(buf.getvalue()) == "image/jpeg"
    assert sniff_mime(make_png()) == "image/png"
    assert sniff_mime(b"garbage", default="image/webp") == "image/webp"
    assert image_to_data_uri(make_png()).startswith("data:image/png;base64,")


def test_as_image_url():
    assert as_image_url("https://x/y.png") == "https://x/y.png"
    assert as_image_url("data:image/jpeg;base64,AAAA") == "data:image/jpeg;base64,AAAA"
    assert as_image_url(" QUJD ") == "data:image/png;base64,QUJD"


def test_load_from_data_uri():
    data = make_png()
    assert load_image_bytes(ImageReference(data_uri=to_data_uri(data, "image/png"))) == data


def test_load_from_url():
    def handler(r):
        return httpx.Response(200, content=b"remote-bytes")

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert load_image_bytes(ImageReference(url="https://cdn/x.png"), client=client) == b"remote-bytes"


def test_load_failure_is_validation_error():
    def handler(r):
        return httpx.Response(404)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ValidationError, match="Failed to load previous image"):
            load_image_bytes(ImageReference(url="https://cdn/missing.png"), client=client)


def test_closest_dimensions():
    assert closest_dimensions((1000, 1000)) == (1024, 1024)
    assert closest_dimensions((600, 1400)) == (640, 1536)


def test_fit_to_sdxl_outputs_png():
    out = fit_to_sdxl(make_png(size=(300, 300)))
    with Image.open(io.BytesIO(out)) as im:
        assert im.format == "PNG"
        assert im.size == (1024, 1024)

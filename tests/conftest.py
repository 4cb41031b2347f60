"""
Shared fixtures: in-memory images and a Flask test client wired to a
temporary signature file.
"""
import io
import os

import pytest
from PIL import Image

from app import app as flask_app, MAX_UPLOAD_MB


def make_image_bytes(size=(120, 80), color=(200, 30, 30), fmt="JPEG", mode="RGB", exif=None):
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    kwargs = {"exif": exif} if exif is not None else {}
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def make_noise_png(size=(600, 600)):
    """Random pixels, so the PNG stays roughly width * height * 3 bytes."""
    img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    """Factory fixture: image_bytes(size=..., fmt=...) -> bytes."""
    return make_image_bytes


@pytest.fixture
def noise_png():
    return make_noise_png


@pytest.fixture
def signature_path(tmp_path):
    path = tmp_path / "assinatura.png"
    path.write_bytes(make_image_bytes(size=(400, 120), color=(0, 0, 0, 0), fmt="PNG", mode="RGBA"))
    return path


@pytest.fixture
def app(signature_path):
    limit = MAX_UPLOAD_MB * 1024 * 1024
    flask_app.config.update(TESTING=True, SIGNATURE_PATH=str(signature_path),
                            MAX_CONTENT_LENGTH=limit, MAX_FORM_MEMORY_SIZE=limit)
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def report_form(image_bytes):
    """Factory for a multipart payload; `proofs` is a list of captions."""
    def build(title="Festa de Rua!", sponsor="Acme Co.", proofs=("Praça Central",), cover=True):
        data = {"projectTitle": title, "sponsor": sponsor}
        if cover:
            data["coverImage"] = (io.BytesIO(image_bytes(size=(300, 200))), "capa.jpg", "image/jpeg")
        data["proof_files"] = [
            (io.BytesIO(image_bytes(size=(90, 160))), f"foto{i}.jpg", "image/jpeg")
            for i in range(len(proofs))
        ]
        data["titles"] = list(proofs)
        return data
    return build

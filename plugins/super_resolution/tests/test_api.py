from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from app import create_app
from plugins.super_resolution import api as api_module
from plugins.super_resolution.core import ModelBundle, UpscaleResult
from plugins.super_resolution.core import engine

PREFIX = "/api/v1/super_resolution"


def _settings(**overrides):
    settings = {
        "enabled": True,
        "device": "cpu",
        "max_upload_mb": 1,
        "default_scale": 2,
        "default_model": "fake_x2",
        "bgr_input": False,
        "enhancement": {"denoise": 0, "detail": 0, "micro": 0},
        "models": {
            "fake_x2": {"weights_path": "weights/fake_x2.onnx", "scale": 2, "tile_size": 8},
            "fake_x4": {"weights_path": "weights/fake_x4.onnx", "scale": 4, "tile_size": 8},
        },
    }
    settings.update(overrides)
    return settings


@pytest.fixture
def make_client():
    def _make(**overrides):
        app = create_app("TestingConfig")
        app.config["PLUGIN_SETTINGS"]["super_resolution"] = _settings(**overrides)
        return app.test_client()

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


def _sample_png(size=(10, 10), color=(40, 120, 200)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def _upload(data: bytes = None, name: str = "sample.png", **fields):
    form = dict(fields)
    form["image"] = (BytesIO(data if data is not None else _sample_png()), name)
    return form


class _NearestRunner:
    def input_dims(self):
        return None

    def __call__(self, tensor):
        factor = 2
        return np.repeat(np.repeat(tensor, factor, axis=2), factor, axis=3)


class _BrokenRunner:
    def input_dims(self):
        return None

    def __call__(self, tensor):
        raise RuntimeError("session crashed")


def _patch_runner(monkeypatch, runner):
    monkeypatch.setattr(
        engine,
        "get_runner",
        lambda spec, device: ModelBundle(spec=spec, device=device, runner=runner),
    )


def test_health_endpoint_reports_status(client):
    response = client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["success"] is True
    data = payload["data"]
    assert data["status"] == "ok"
    assert response.headers["Cache-Control"] == "no-store"
    assert data["model_name"] == "fake_x2"
    assert data["model_loaded"] is False
    assert data["device"] == "cpu"
    assert isinstance(data["backend_available"], bool)
    assert data["models"]["fake_x4"] == {"scale": 4, "backend": "onnx"}


def test_plan_describes_tiles(client):
    response = client.post(
        f"{PREFIX}/plan",
        json={"width": 10, "height": 10, "factor": 1, "tile_width": 8, "overlap": 2},
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert (data["padded_width"], data["padded_height"]) == (12, 12)
    assert (data["tiles_x"], data["tiles_y"]) == (2, 2)
    assert (data["output_width"], data["output_height"]) == (10, 10)
    assert len(data["tiles"]) == 4
    first = data["tiles"][0]
    assert first["crop"] == {"left": 0, "top": 0, "right": 2, "bottom": 2}
    assert first["dest"] == {"x": 0, "y": 0, "width": 6, "height": 6}


def test_plan_clamps_default_overlap(client):
    response = client.post(f"{PREFIX}/plan", json={"width": 100, "height": 50, "tile_width": 16})
    data = response.get_json()["data"]
    assert data["overlap"] == 4
    assert data["tile_height"] == 16


def test_plan_rejects_bad_geometry(client):
    response = client.post(
        f"{PREFIX}/plan", json={"width": 10, "height": 10, "tile_width": 4, "overlap": 3}
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_geometry"


def test_plan_rejects_bad_payload(client):
    response = client.post(f"{PREFIX}/plan", json={"width": -1, "height": 10, "extra": 1})
    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["code"] == "super_resolution.invalid_parameters"
    assert error["details"]["errors"]


def test_enhance_returns_same_size_image(client):
    response = client.post(
        f"{PREFIX}/enhance",
        data=_upload(detail="0.5", output_format="jpg"),
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.mimetype == "image/jpeg"
    assert response.headers["X-Upscale-Method"] == "enhance"
    assert response.headers["X-Upscale-Size"] == "10x10"


def test_enhance_rejects_out_of_range_strength(client):
    response = client.post(
        f"{PREFIX}/enhance",
        data=_upload(micro="3"),
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_parameters"


def test_predict_endpoint_returns_image(client, monkeypatch):
    output_buffer = BytesIO()
    Image.new("RGB", (4, 4), color=(10, 20, 30)).save(output_buffer, format="PNG")
    output_bytes = output_buffer.getvalue()
    captured = {}

    def _fake_upscale(data, **kwargs):
        captured.update(kwargs)
        return UpscaleResult(
            image_bytes=output_bytes,
            width=4,
            height=4,
            scale=2,
            output_format="png",
            tiles=1,
            normalization=("0to255",),
        )

    monkeypatch.setattr(api_module, "upscale_image", _fake_upscale)
    response = client.post(
        f"{PREFIX}/predict",
        data=_upload(scale="2", model="fake_x2", output_format="png", normalization="0to255"),
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.mimetype == "image/png"
    assert response.data.startswith(b"\x89PNG")
    assert response.headers["X-Upscale-Normalization"] == "0to255"
    assert captured["spec"].name == "fake_x2"
    assert captured["options"].normalization.value == "0to255"


def test_predict_runs_tiled_pipeline(client, monkeypatch):
    _patch_runner(monkeypatch, _NearestRunner())
    response = client.post(
        f"{PREFIX}/predict",
        data=_upload(scale="2"),
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.headers["X-Upscale-Method"] == "ai"
    assert response.headers["X-Upscale-Size"] == "20x20"
    assert int(response.headers["X-Upscale-Tiles"]) == 4
    image = Image.open(BytesIO(response.data)).convert("RGB")
    assert image.size == (20, 20)
    assert image.getpixel((7, 13)) == (40, 120, 200)


def test_predict_reports_inference_failure(make_client, monkeypatch):
    client = make_client(fallback_to_classic=False)
    _patch_runner(monkeypatch, _BrokenRunner())
    response = client.post(
        f"{PREFIX}/predict", data=_upload(), content_type="multipart/form-data"
    )
    assert response.status_code == 502
    error = response.get_json()["error"]
    assert error["code"] == "super_resolution.inference_failed"
    assert error["details"]["modes"] == ["0to1", "neg1to1", "0to255"]
    assert "session crashed" in error["details"]["cause"]


def test_predict_falls_back_to_classic(client, monkeypatch):
    _patch_runner(monkeypatch, _BrokenRunner())
    response = client.post(
        f"{PREFIX}/predict", data=_upload(), content_type="multipart/form-data"
    )
    assert response.status_code == 200
    assert response.headers["X-Upscale-Method"] == "classic"
    assert response.headers["X-Upscale-Size"] == "20x20"


@pytest.mark.parametrize(
    "form, code",
    [
        ({"scale": "3"}, "super_resolution.invalid_parameters"),
        ({"output_format": "gif"}, "super_resolution.invalid_parameters"),
        ({"normalization": "sideways"}, "super_resolution.invalid_parameters"),
        ({"model": "unknown"}, "super_resolution.invalid_parameters"),
        ({"scale": "4", "model": "fake_x2"}, "super_resolution.scale_mismatch"),
    ],
)
def test_predict_rejects_bad_fields(client, form, code):
    response = client.post(
        f"{PREFIX}/predict", data=_upload(**form), content_type="multipart/form-data"
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == code


def test_predict_requires_image(client):
    response = client.post(
        f"{PREFIX}/predict", data={"scale": "2"}, content_type="multipart/form-data"
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.missing_image"


def test_predict_rejects_non_image_upload(client):
    response = client.post(
        f"{PREFIX}/predict",
        data=_upload(b"plain text, not pixels", name="notes.txt"),
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_upload"


def test_predict_rejects_oversized_upload(client):
    payload = b"\x89PNG\r\n\x1a\n" + b"\x00" * (1024 * 1024 + 16)
    response = client.post(
        f"{PREFIX}/predict",
        data=_upload(payload),
        content_type="multipart/form-data",
    )
    assert response.status_code == 413
    assert response.get_json()["error"]["code"] == "super_resolution.too_large"


def test_predict_disabled(make_client):
    client = make_client(enabled=False)
    response = client.post(
        f"{PREFIX}/predict", data=_upload(), content_type="multipart/form-data"
    )
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "super_resolution.disabled"


def test_predict_rejects_infinite_scale(client):
    response = client.post(
        f"{PREFIX}/predict", data=_upload(scale="inf"), content_type="multipart/form-data"
    )
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_parameters"


def test_plan_rejects_oversized_source(client):
    response = client.post(f"{PREFIX}/plan", json={"width": 20000, "height": 20000, "factor": 2})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "super_resolution.invalid_parameters"


def test_plan_rejects_too_many_tiles(client):
    response = client.post(
        f"{PREFIX}/plan", json={"width": 16384, "height": 16384, "factor": 2}
    )
    assert response.status_code == 400
    error = response.get_json()["error"]
    assert error["code"] == "super_resolution.invalid_geometry"
    assert "limit is 4096" in error["message"]

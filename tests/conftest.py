import io
import os
import time

import pytest
from PIL import Image

from trustlens.config import Settings
from trustlens.inference.loader import ModelRunner


class FakeRunner:
    """Stands in for ModelRunner; returns a fixed score and records calls."""

    def __init__(self, score=0.75, loaded=True, delay=0.0, error=None):
        self.score = score
        self.delay = delay
        self.error = error
        self.model = object() if loaded else None
        self.source = "placeholder" if loaded else None
        self.device = "cpu"
        self.shapes = []

    @property
    def is_loaded(self):
        return self.model is not None

    @property
    def calls(self):
        return len(self.shapes)

    def load(self):
        self.model = object()
        self.source = "placeholder"
        return self.model

    def infer(self, tensor):
        self.shapes.append(tuple(tensor.shape))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.score


def make_image_bytes(fmt="PNG", mode="RGB", size=(64, 48), color=None):
    if color is None:
        color = {"RGB": (120, 30, 200), "RGBA": (120, 30, 200, 128), "L": 90, "P": 3}[mode]
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def staged_files(upload_dir):
    if not os.path.isdir(upload_dir):
        return []
    return os.listdir(upload_dir)


@pytest.fixture
def png_bytes():
    return make_image_bytes()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        model_path=str(tmp_path / "model" / "model.pt"),
        upload_dir=str(tmp_path / "uploads"),
        database_url=f"sqlite:///{tmp_path / 'trustlens.db'}",
        device="cpu",
        inference_timeout=10.0,
    )


@pytest.fixture(scope="session")
def placeholder_runner(tmp_path_factory):
    runner = ModelRunner(str(tmp_path_factory.mktemp("model") / "missing.pt"), device="cpu")
    runner.load()
    return runner


@pytest.fixture
def fake_runner():
    return FakeRunner()

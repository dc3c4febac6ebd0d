"""
Shared fixtures: a fake onnxruntime session, a model directory and a fake
Hydrus client.
"""

import io
import json
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

from hydrus_tagger import interrogator as interrogator_module
from hydrus_tagger.exceptions import NetworkError
from hydrus_tagger.interrogator import Interrogator
from hydrus_tagger.models import TagCommit

LABELS = [
    "general", "sensitive", "questionable", "explicit",
    "tag_one", "tag_two", "0_0", "low_confidence",
]
SCORES = [0.1, 0.6, 0.2, 0.1, 0.9, 0.7, 0.8, 0.3]
INPUT_SIZE = 8


class FakeSession:
    """Stands in for ``onnxruntime.InferenceSession``."""

    def __init__(self, scores=None, size=INPUT_SIZE, error=None):
        self.scores = list(SCORES if scores is None else scores)
        self.size = size
        self.error = error
        self.calls = []

    def get_inputs(self):
        return [SimpleNamespace(name="input_1", shape=["batch", self.size, self.size, 3])]

    def get_outputs(self):
        return [SimpleNamespace(name="predictions")]

    def run(self, output_names, feed):
        self.calls.append(feed)
        if self.error:
            raise self.error
        return [np.array([self.scores], dtype=np.float32)]


def png_bytes(size=(16, 12), color=(200, 30, 30), mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def write_model_dir(path, labels=LABELS, ratings=True, number_of_ratings=4, **manifest):
    path.mkdir(parents=True, exist_ok=True)
    data = {
        "name": "Test Tagger",
        "source": "tests",
        "modelfile": "model.onnx",
        "tagsfile": "tags.csv",
        "ratingsflag": 1 if ratings else 0,
        "numberofratings": number_of_ratings if ratings else 0,
    }
    data.update(manifest)
    (path / "model.json").write_text(json.dumps(data), encoding="utf-8")
    lines = ["tag_id,name,category,count"]
    lines += [f"{i},{label},0,{100 - i}" for i, label in enumerate(labels)]
    (path / "tags.csv").write_text("\n".join(lines) + "\n", encoding="utf-8")
    (path / "model.onnx").write_bytes(b"not really onnx")
    return path


@pytest.fixture
def fake_session(monkeypatch):
    session = FakeSession()

    def factory(path, sess_options=None, providers=None):
        return session

    monkeypatch.setattr(interrogator_module.ort, "InferenceSession", factory)
    return session


@pytest.fixture
def model_dir(tmp_path):
    return write_model_dir(tmp_path / "model")


@pytest.fixture
def interrogator(model_dir, fake_session):
    return Interrogator(model_dir)


class FakeHydrusClient:
    """In-memory stand-in for HydrusClient."""

    def __init__(self):
        self.files = {}
        self.renders = {}
        self.services = {"key-my-tags": "my tags", "key-ai": "A.I. Tags"}
        self.untagged = []
        self.commits = []
        self.fail_commit = False
        self.fail_search = False
        self.search_calls = []
        self.services_calls = 0

    def get_file(self, file_hash):
        if file_hash not in self.files:
            raise NetworkError(f"HTTP 404 for {file_hash}")
        return self.files[file_hash]

    def get_render(self, file_hash):
        if file_hash not in self.renders:
            raise NetworkError(f"HTTP 404 render for {file_hash}")
        return self.renders[file_hash]

    def search_file_hashes(self, tags, tag_service_key=None):
        self.search_calls.append((list(tags), tag_service_key))
        if self.fail_search:
            raise NetworkError("search failed")
        return list(self.untagged)

    def get_services(self):
        self.services_calls += 1
        return dict(self.services)

    def add_tags(self, commit: TagCommit):
        if self.fail_commit:
            raise NetworkError("HTTP 500")
        self.commits.append(commit)

    def api_version(self):
        return {"version": 80, "hydrus_version": 600}


@pytest.fixture
def fake_client():
    return FakeHydrusClient()

import json

import pytest
from PIL import Image

from hydrus_tagger import interrogator as interrogator_module
from hydrus_tagger.exceptions import ConfigurationError, InferenceError, ModelLoadError
from hydrus_tagger.interrogator import Interrogator, load_labels

from .conftest import INPUT_SIZE, LABELS, FakeSession, write_model_dir


def test_loads_descriptor_and_labels(interrogator):
    descriptor = interrogator.descriptor
    assert descriptor.name == "Test Tagger"
    assert descriptor.ratings_flag is True
    assert descriptor.number_of_ratings == 4
    assert descriptor.pixel_max == 255.0
    assert interrogator.labels == LABELS
    assert interrogator.input_size == INPUT_SIZE


def test_interrogate_splits_ratings(interrogator, fake_session):
    ratings, tags = interrogator.interrogate(Image.new("RGB", (20, 10)))

    assert list(ratings) == ["general", "sensitive", "questionable", "explicit"]
    assert list(tags) == ["tag_one", "tag_two", "0_0", "low_confidence"]
    assert len(ratings) + len(tags) == len(LABELS)
    assert tags["tag_one"] == pytest.approx(0.9)

    feed = fake_session.calls[0]
    assert feed["input_1"].shape == (1, INPUT_SIZE, INPUT_SIZE, 3)


def test_interrogate_without_ratings(tmp_path, fake_session):
    model_dir = write_model_dir(tmp_path / "plain", ratings=False)
    ratings, tags = Interrogator(model_dir).interrogate(Image.new("RGB", (8, 8)))
    assert ratings is None
    assert list(tags) == LABELS


def test_pixel_max_from_manifest(tmp_path, fake_session):
    model_dir = write_model_dir(tmp_path / "scaled", pixelmax=1)
    Interrogator(model_dir).interrogate(Image.new("RGB", (8, 8), (255, 255, 255)))
    assert fake_session.calls[0]["input_1"].max() == pytest.approx(1.0)


def test_wrong_output_width(interrogator, fake_session):
    fake_session.scores = fake_session.scores[:-1]
    with pytest.raises(InferenceError):
        interrogator.interrogate(Image.new("RGB", (8, 8)))


def test_engine_failure(interrogator, fake_session):
    fake_session.error = RuntimeError("boom")
    with pytest.raises(InferenceError):
        interrogator.interrogate(Image.new("RGB", (8, 8)))


def test_missing_directory(tmp_path, fake_session):
    with pytest.raises(ConfigurationError):
        Interrogator(tmp_path / "nope")


def test_malformed_manifest(model_dir, fake_session):
    (model_dir / "model.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Interrogator(model_dir)


def test_manifest_missing_fields(model_dir, fake_session):
    (model_dir / "model.json").write_text(json.dumps({"name": "x"}), encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Interrogator(model_dir)


def test_missing_label_file(model_dir, fake_session):
    (model_dir / "tags.csv").unlink()
    with pytest.raises(ConfigurationError):
        Interrogator(model_dir)


def test_too_many_ratings(tmp_path, fake_session):
    model_dir = write_model_dir(tmp_path / "bad", number_of_ratings=len(LABELS) + 1)
    with pytest.raises(ConfigurationError):
        Interrogator(model_dir)


def test_weights_fail_to_load(model_dir, monkeypatch):
    def factory(path, sess_options=None, providers=None):
        raise RuntimeError("invalid protobuf")

    monkeypatch.setattr(interrogator_module.ort, "InferenceSession", factory)
    with pytest.raises(ModelLoadError):
        Interrogator(model_dir)


def test_session_uses_model_file(model_dir, monkeypatch):
    opened = []

    def factory(path, sess_options=None, providers=None):
        opened.append(path)
        return FakeSession()

    monkeypatch.setattr(interrogator_module.ort, "InferenceSession", factory)
    Interrogator(model_dir)
    assert opened == [str(model_dir / "model.onnx")]


def test_headerless_label_file(tmp_path):
    path = tmp_path / "tags.csv"
    path.write_text("safe,extra\nquestionable\n\nexplicit,1,2\n", encoding="utf-8")
    assert load_labels(path) == ["safe", "questionable", "explicit"]


def test_label_file_with_name_column(tmp_path):
    path = tmp_path / "tags.csv"
    path.write_text("tag_id,name,category\n1,1girl,0\n2,solo,0\n", encoding="utf-8")
    assert load_labels(path) == ["1girl", "solo"]


def test_duplicate_labels_rejected(tmp_path):
    path = tmp_path / "tags.csv"
    path.write_text("name\nsolo\nsolo\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_labels(path)


def test_ratings_flag_without_ratings_rejected(tmp_path, fake_session):
    model_dir = write_model_dir(tmp_path / "no-ratings", ratings=True, number_of_ratings=0)
    with pytest.raises(ConfigurationError):
        Interrogator(model_dir)

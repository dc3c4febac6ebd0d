"""
Model loading and inference for booru-style image taggers.
"""

import csv
import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import onnxruntime as ort
from PIL import Image
from pydantic import ValidationError

from .exceptions import ConfigurationError, InferenceError, ModelLoadError
from .logging import get_logger
from .models import ModelDescriptor
from .preprocessing import normalize_image

MANIFEST_FILE = "model.json"


def load_descriptor(model_dir: Path) -> ModelDescriptor:
    """Read and validate the ``model.json`` manifest."""
    manifest_path = model_dir / MANIFEST_FILE
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read model manifest {manifest_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed model manifest {manifest_path}: {e}") from e

    try:
        return ModelDescriptor.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid model manifest {manifest_path}: {e}") from e


def load_labels(tags_path: Path) -> List[str]:
    """Read the ordered label vocabulary from a CSV file.

    A first row containing a ``name`` column is treated as a header and that
    column is used; otherwise the first column of every row is the label.
    """
    try:
        with open(tags_path, "r", encoding="utf-8", newline="") as f:
            rows = [row for row in csv.reader(f) if row]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigurationError(f"Cannot parse label file {tags_path}: {e}") from e

    column = 0
    header = [cell.strip().lower() for cell in rows[0]] if rows else []
    if "name" in header:
        column = header.index("name")
        rows = rows[1:]

    labels = []
    for line_no, row in enumerate(rows, start=1):
        if column >= len(row):
            raise ConfigurationError(f"Label file {tags_path} row {line_no} has no label column")
        labels.append(row[column].strip())

    if not labels:
        raise ConfigurationError(f"Label file {tags_path} contains no labels")
    if len(set(labels)) != len(labels):
        raise ConfigurationError(f"Label file {tags_path} contains duplicate labels")
    return labels


class Interrogator:
    """Owns a loaded ONNX tagging model and its label vocabulary."""

    def __init__(self, model_dir: Union[str, Path]):
        self.logger = get_logger("interrogator")
        self.model_dir = Path(model_dir)
        if not self.model_dir.is_dir():
            raise ConfigurationError(f"Model directory not found: {self.model_dir}")

        self._descriptor = load_descriptor(self.model_dir)
        self._labels = load_labels(self.model_dir / self._descriptor.tags_file)

        if self._descriptor.ratings_flag and self._descriptor.number_of_ratings > len(self._labels):
            raise ConfigurationError(
                f"numberofratings ({self._descriptor.number_of_ratings}) exceeds "
                f"vocabulary size ({len(self._labels)})"
            )

        self._session = self._load_session(self.model_dir / self._descriptor.model_file)
        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        self._output_name = self._session.get_outputs()[0].name
        try:
            self._input_size = int(model_input.shape[1])
        except (TypeError, ValueError, IndexError) as e:
            raise ModelLoadError(f"Model input shape {model_input.shape} has no fixed size") from e

        self.logger.info(
            f"🧠 Loaded model '{self._descriptor.name}' ({self._descriptor.source or 'unknown source'}) | "
            f"{len(self._labels)} labels | input {self._input_size}x{self._input_size}"
        )

    def _load_session(self, model_path: Path):
        """Create the onnxruntime session with host-sized intra-op parallelism."""
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.intra_op_num_threads = os.cpu_count() or 1
        try:
            return ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to load model weights {model_path}: {e}") from e

    @property
    def descriptor(self) -> ModelDescriptor:
        return self._descriptor

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def input_size(self) -> int:
        return self._input_size

    def interrogate(self, image: Image.Image) -> Tuple[Optional[Dict[str, float]], Dict[str, float]]:
        """Score ``image`` against every label.

        Returns ``(ratings, tags)``; ``ratings`` is None unless the model
        reserves its leading labels for ratings.
        """
        tensor = normalize_image(image, self._input_size, self._descriptor.pixel_max)

        try:
            outputs = self._session.run([self._output_name], {self._input_name: tensor})
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.shape[0] != len(self._labels):
            raise InferenceError(
                f"Model returned {scores.shape[0]} scores for {len(self._labels)} labels"
            )

        confidences = dict(zip(self._labels, scores.tolist()))
        return self.split_ratings(confidences)

    def split_ratings(self, confidences: Dict[str, float]) -> Tuple[Optional[Dict[str, float]], Dict[str, float]]:
        """Split off the leading rating block when the model declares one."""
        if not self._descriptor.ratings_flag:
            return None, confidences

        items = list(confidences.items())
        split = self._descriptor.number_of_ratings
        return dict(items[:split]), dict(items[split:])

"""
Image decoding and normalisation for model input.
"""

import io
import numpy as np
from PIL import Image
from .exceptions import DecodeError

# Hydrus happily stores very large images
Image.MAX_IMAGE_PIXELS = None


def decode_image(data: bytes) -> Image.Image:
    """Decode raw file bytes into a fully loaded PIL image."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image
    except Exception as e:
        raise DecodeError(f"Failed to decode image: {e}") from e


def _to_rgb(image: Image.Image) -> Image.Image:
    """Flatten any transparency onto white and return an RGB image."""
    if image.mode == "I" or image.mode.startswith("I;16"):
        # 16-bit samples are scaled down to 8 bits, not clipped
        samples = np.clip(np.asarray(image).astype(np.int64), 0, 65535)
        image = Image.fromarray((samples >> 8).astype(np.uint8))
    elif image.mode == "F":
        image = Image.fromarray(np.clip(np.asarray(image), 0, 255).astype(np.uint8))
    if image.mode == "P" and "transparency" in image.info:
        image = image.convert("RGBA")
    if image.mode in ("RGBA", "LA", "PA"):
        image = image.convert("RGBA")
        background = Image.new("RGBA", image.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def fit_size(width: int, height: int, size: int):
    """Largest (width, height) with the same aspect ratio that fits ``size``."""
    scale = size / max(width, height)
    fitted_w = min(size, max(1, round(width * scale)))
    fitted_h = min(size, max(1, round(height * scale)))
    return fitted_w, fitted_h


def normalize_image(image: Image.Image, size: int, pixel_max: float = 255.0) -> np.ndarray:
    """Convert ``image`` into a ``(1, size, size, 3)`` BGR float32 tensor.

    The image is scaled (up or down) to fit inside ``size`` x ``size``,
    centred on a white canvas and scaled to the ``[0, pixel_max]`` range.
    """
    image = _to_rgb(image)

    fitted = fit_size(image.width, image.height, size)
    if fitted != image.size:
        image = image.resize(fitted, Image.Resampling.LANCZOS)

    canvas = Image.new("RGB", (size, size), (255, 255, 255))
    offset = ((size - image.width) // 2, (size - image.height) // 2)
    canvas.paste(image, offset)

    arr = np.asarray(canvas, dtype=np.float32)
    arr = arr[:, :, ::-1]  # RGB to BGR
    if pixel_max != 255.0:
        arr = arr * (pixel_max / 255.0)
    return np.ascontiguousarray(np.expand_dims(arr, axis=0))

"""Local visual feature vectors for the vision-embedding layer.

Each photo is reduced to one unit vector built from three weighted parts:
an RGB color histogram, pooled Sobel edge magnitudes and perceptual-hash
bits. Every part is L2-normalized and scaled by sqrt(weight), so the dot
product of two vectors is the weighted mean of the per-part cosines.
"""
import io
import logging
import math

import cv2
import imagehash
import numpy as np
from PIL import Image

log = logging.getLogger("scoutai.features")

INPUT_SIZE = 224
HISTOGRAM_BINS = 16
EDGE_GRID = 14

HISTOGRAM_WEIGHT = 0.4
EDGE_WEIGHT = 0.3
PHASH_WEIGHT = 0.3


def _unit(vec: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec.astype(np.float32)
    return (vec / norm).astype(np.float32)


def color_histogram(rgb: np.ndarray, bins: int = HISTOGRAM_BINS) -> np.ndarray:
    """Per-channel histogram normalized by pixel count."""
    pixels = rgb.shape[0] * rgb.shape[1]
    parts = [
        np.histogram(rgb[:, :, c], bins=bins, range=(0, 256))[0].astype(np.float32) / pixels
        for c in range(3)
    ]
    return np.concatenate(parts)


def edge_features(rgb: np.ndarray, grid: int = EDGE_GRID) -> np.ndarray:
    gray = cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY).astype(np.float32)
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)
    pooled = cv2.resize(magnitude, (grid, grid), interpolation=cv2.INTER_AREA)
    return pooled.flatten()


def phash_bits(img: Image.Image) -> np.ndarray:
    bits = imagehash.phash(img).hash.flatten()
    return np.where(bits, 1.0, -1.0).astype(np.float32)


def extract_features(data: bytes) -> np.ndarray:
    """Return the combined unit feature vector for encoded image bytes.

    Raises ValueError when the bytes cannot be decoded as an image.
    """
    try:
        img = Image.open(io.BytesIO(data)).convert("RGB")
    except Exception as e:
        raise ValueError(f"Cannot decode image: {e}") from e

    resized = img.resize((INPUT_SIZE, INPUT_SIZE), Image.BILINEAR)
    rgb = np.asarray(resized, dtype=np.uint8)

    parts = [
        (HISTOGRAM_WEIGHT, color_histogram(rgb)),
        (EDGE_WEIGHT, edge_features(rgb)),
        (PHASH_WEIGHT, phash_bits(resized)),
    ]
    total = sum(w for w, _ in parts)
    vec = np.concatenate([math.sqrt(w / total) * _unit(p) for w, p in parts])
    return vec.astype(np.float32)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity clamped to [0, 1]."""
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0 or a.shape != b.shape:
        return 0.0
    sim = float(np.dot(a, b) / (na * nb))
    return max(0.0, min(1.0, sim))

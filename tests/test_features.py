"""Tests for local visual features and hashing."""
import numpy as np
import pytest

from conftest import png_bytes
from scoutai.core.features import cosine_similarity, extract_features
from scoutai.core.hashing import compute_sha256, hashes_equal


def test_features_are_unit_vectors():
    vec = extract_features(png_bytes(stripes=True))
    assert vec.ndim == 1
    assert float(np.linalg.norm(vec)) == pytest.approx(1.0, abs=1e-4)


def test_identical_images_match():
    a = extract_features(png_bytes(stripes=True))
    b = extract_features(png_bytes(stripes=True))
    assert cosine_similarity(a, b) == pytest.approx(1.0, abs=1e-5)


def test_different_images_score_lower():
    red = extract_features(png_bytes((220, 30, 30), stripes=True))
    blue = extract_features(png_bytes((30, 30, 220)))
    assert cosine_similarity(red, blue) < 0.9


def test_undecodable_bytes():
    with pytest.raises(ValueError):
        extract_features(b"not an image")


def test_cosine_guards():
    assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0
    assert cosine_similarity(np.ones(3), np.ones(4)) == 0.0
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([-1.0, 0.0])) == 0.0


def test_sha256_and_hash_equality():
    digest = compute_sha256(b"photo")
    assert len(digest) == 64
    assert hashes_equal(digest, compute_sha256(b"photo"))
    assert not hashes_equal("", "")
    assert not hashes_equal(None, digest)

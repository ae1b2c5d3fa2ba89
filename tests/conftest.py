"""Shared photo factories for the test suite."""
import io

import numpy as np
import pytest
from PIL import Image

from scoutai.core.models import Coordinate, ImageURI, Photo, Tag

BASE_TIME = 1_700_000_000.0
SITE = (40.7128, -74.0060)


def make_photo(
    photo_id,
    minutes=0.0,
    coords=SITE,
    tags=(),
    description=None,
    project_id="proj-1",
    hash="",
    uri=None,
):
    return Photo(
        id=photo_id,
        project_id=project_id,
        captured_at=None if minutes is None else BASE_TIME + minutes * 60,
        coordinates=() if coords is None else (Coordinate(*coords),),
        uris=(ImageURI(type="web", uri=uri or f"https://img.test/{photo_id}.jpg"),),
        tags=tuple(Tag(id=f"t-{t}", display_value=t, value=t.lower()) for t in tags),
        description=description,
        hash=hash,
    )


def png_bytes(color=(200, 40, 40), size=(64, 64), stripes=False):
    arr = np.zeros((size[1], size[0], 3), dtype=np.uint8)
    arr[:, :] = color
    if stripes:
        arr[:, ::8] = (255, 255, 255)
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def retry_burst():
    """Three shots of one subject a minute apart at the same spot."""
    return [
        make_photo(f"p{i}", minutes=i, tags=("roof",), description="North roof flashing detail")
        for i in range(3)
    ]


@pytest.fixture
def scattered():
    """Photos far apart in time and space with nothing in common."""
    return [
        make_photo("far-1", minutes=0, coords=(40.0, -74.0), tags=("roof",)),
        make_photo("far-2", minutes=60 * 24 * 10, coords=(41.0, -75.0), tags=("kitchen",)),
        make_photo("far-3", minutes=60 * 24 * 30, coords=(42.0, -76.0), tags=("siding",)),
    ]

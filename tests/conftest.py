import pytest

from udf_image import minimal_image


@pytest.fixture
def image():
    return minimal_image()


@pytest.fixture
def stream(image):
    return image.stream()

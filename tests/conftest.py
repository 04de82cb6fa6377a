import pytest

from flash_tool.partition.catalog import catalog
from flash_tool.partition.model import ImageRequest

MiB = 1024 * 1024


@pytest.fixture
def capacity():
    return 16 * MiB


@pytest.fixture
def system():
    return catalog()


@pytest.fixture
def images():
    return [
        ImageRequest("launcher", 1_200_000),
        ImageRequest("doom", 3_000_000),
        ImageRequest("snake", 200_000),
    ]

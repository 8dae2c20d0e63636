import pytest

import builders
from arsc import decode_resource_table
from axml import decode_axml
from dex import decode_dex


@pytest.fixture(scope="session")
def dex_bytes():
    return builders.sample_dex().build()


@pytest.fixture(scope="session")
def dex(dex_bytes):
    return decode_dex(dex_bytes)


@pytest.fixture(scope="session")
def sample_class(dex):
    return dex.find_class(builders.SAMPLE_CLASS)


@pytest.fixture(scope="session")
def manifest_bytes():
    return builders.sample_manifest().build()


@pytest.fixture(scope="session")
def manifest(manifest_bytes):
    return decode_axml(manifest_bytes)


@pytest.fixture(scope="session")
def arsc_bytes():
    return builders.sample_resources()


@pytest.fixture(scope="session")
def resources(arsc_bytes):
    return decode_resource_table(arsc_bytes)

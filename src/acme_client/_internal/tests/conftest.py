from unittest import mock

import pytest


@pytest.fixture(autouse=True)
def mock_sleep():
    with mock.patch("time.sleep") as mocked:
        yield mocked


@pytest.fixture(autouse=True)
def fast_kdf():
    with mock.patch("acme_client.export.KDF_ITERATIONS", 1000):
        yield

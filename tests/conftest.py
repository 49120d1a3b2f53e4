import pytest
from fastapi.testclient import TestClient

from kpiattest import Ed25519Signer
from kpiattest.api import app, get_signer

TEST_SEED = bytes(range(32))


@pytest.fixture
def signer():
    return Ed25519Signer.from_seed(TEST_SEED, kid="test-tee")


# Service client signing with the fixed test key
@pytest.fixture
def client(signer):
    app.dependency_overrides[get_signer] = lambda: signer
    yield TestClient(app)
    app.dependency_overrides.clear()

from __future__ import annotations

import pytest

from devlink.shared.security import generate_identity


@pytest.fixture(scope="session")
def server_identity():
    return generate_identity("Test Server")


@pytest.fixture(scope="session")
def client_identity():
    return generate_identity("Test Client")


@pytest.fixture(scope="session")
def impostor_identity():
    """Claims the client's name but holds a different key and certificate."""
    return generate_identity("Test Client")

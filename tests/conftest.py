"""Shared fixtures."""

from __future__ import annotations

import pytest

from tests.fakes import FakeCloud, generate_private_key_pem


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    return generate_private_key_pem()


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()

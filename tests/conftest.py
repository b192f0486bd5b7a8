"""Shared fixtures for grade estimation tests."""

import pytest

from cardgrade.grading.models import CardIdentity, Confidence

from tests.helpers import StubCollaborators, make_data_url, make_image_bytes


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def png_data_url() -> str:
    return make_data_url("PNG", "image/png")


@pytest.fixture
def identity() -> CardIdentity:
    return CardIdentity(
        player="Ken Griffey Jr.",
        year=1989,
        brand="Upper Deck",
        set_name="Upper Deck",
        card_number="1",
        rookie=True,
        confidence=Confidence.HIGH,
        sources={"player": "vision", "year": "vision"},
    )


@pytest.fixture
def stubs(identity) -> StubCollaborators:
    return StubCollaborators(identity)

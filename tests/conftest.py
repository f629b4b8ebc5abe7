"""
Pytest configuration and fixtures.
"""

import os

import pytest

from tests.fakes import FakeDocument, FakeElement


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Keep tests independent of the developer's environment and config files."""
    from tour_anchor.config import reset_settings

    for name in list(os.environ):
        if name.startswith("TOUR_ANCHOR"):
            monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    """Provide test settings with short timeouts."""
    from tour_anchor.config import Settings, LocatorSettings

    return Settings(
        locator=LocatorSettings(
            wait_timeout_ms=200,
            step_validation_timeout_ms=50,
            retries=1,
            retry_delay_ms=0,
            fallback_retries=0,
            fallback_retry_delay_ms=0,
        ),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def document():
    """Empty document with :has() support."""
    return FakeDocument()


@pytest.fixture
def page():
    """Small page with a header, navigation and a form."""
    doc = FakeDocument()
    header = doc.body.add(FakeElement("header", attrs={"class": "site-header"}))
    nav = header.add(FakeElement("nav", attrs={"id": "main-nav"}))
    nav.add(FakeElement("a", "Home", attrs={"href": "/home"}))
    nav.add(FakeElement("a", "Pricing", attrs={"href": "/pricing", "class": "nav-link"}))
    form = doc.body.add(FakeElement("form", attrs={"id": "signup"}))
    form.add(FakeElement("label", "Email", attrs={"for": "email"}))
    form.add(FakeElement("input", attrs={"id": "email", "name": "email", "type": "email"}))
    form.add(FakeElement("button", "Sign up", attrs={"class": "btn primary", "data-testid": "signup-button"}))
    return doc


@pytest.fixture
def validator(page, settings):
    from tour_anchor.engine.tour_validator import TourElementValidator

    return TourElementValidator(page, settings=settings)

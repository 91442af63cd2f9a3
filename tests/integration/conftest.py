"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures giving API tests
direct access to the scripted provider adapters injected into the app.
"""

import pytest


@pytest.fixture
def scripted(test_providers):
    """The scripted provider that is active after startup.

    Tests queue replies on it before sending requests.
    """
    return test_providers[0]


@pytest.fixture
def backup(test_providers):
    """The second scripted provider, selected by name in requests."""
    return test_providers[1]

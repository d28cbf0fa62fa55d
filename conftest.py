# conftest.py - pytest config for the Django test suite

import os
import pytest

# Ensure Django settings are discoverable for pytest
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "app.settings")


@pytest.fixture(autouse=True)
def _test_settings(settings):
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    # Speed up password hashing in tests
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

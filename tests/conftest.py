"""Pytest configuration for VIGIL test suite."""

import os

# Ensure test environment variables are set before any imports
os.environ.setdefault("VIGIL_API_KEY", "test-key")
os.environ.setdefault("VIGIL_LOG_LEVEL", "warning")

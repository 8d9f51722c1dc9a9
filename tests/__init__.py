"""
Tests Package - Unit Tests

Test structure:
- tests/unit/ - Fast, isolated unit tests (no network, no real sleeps)
- tests/conftest.py - Shared fixtures: fake API client, fake clock, revision factory
"""

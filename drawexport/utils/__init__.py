"""Shared utilities: configuration, schemas, signed API client, cursor state, logging."""

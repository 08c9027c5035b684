"""Shared services: error taxonomy and Problem Details helpers."""

"""Persistence and other integrations with external systems."""

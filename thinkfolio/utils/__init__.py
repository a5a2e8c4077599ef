"""Shared utilities: structured logging and the error hierarchy."""

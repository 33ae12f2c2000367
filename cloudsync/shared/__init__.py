"""Shared models, persistence and errors for CloudSync."""

"""Logging, configuration and error handling shared by the engine."""

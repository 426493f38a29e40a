"""Streaming tool-calling agent loop."""

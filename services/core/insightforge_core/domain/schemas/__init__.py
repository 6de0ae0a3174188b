"""Pydantic value objects shared by the analysis pipeline and the worker."""

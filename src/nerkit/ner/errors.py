"""Exceptions raised by the NER pipeline."""
from __future__ import annotations


class NERError(Exception):
    """Base class for NER pipeline errors."""


class ConfigError(NERError):
    """Invalid configuration file or unknown backend."""


class ModelLoadError(NERError):
    """A token-classification backend could not be constructed."""


class InferenceError(NERError):
    """A token-classification backend failed while predicting."""

"""Ambiente: shared environmental simulator backend."""

__version__ = "0.1.0"

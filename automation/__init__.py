"""Shared automation models."""

from .dsl import models, registry

__all__ = ["registry", "models"]

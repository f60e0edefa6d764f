"""Declarative browser actions and the service that runs them."""

from .dsl import models, registry
from .template import render, render_params

__all__ = ["registry", "models", "render", "render_params"]

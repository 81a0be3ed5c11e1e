"""Presets: ready-to-use config templates for common deployments."""

from .base import Preset, get_preset, list_presets, register_preset  # noqa: F401

# Import presets to trigger registration
from . import default  # noqa: F401
from . import local  # noqa: F401

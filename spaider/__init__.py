"""
spaider package initializer.
Defines package version and exposes the CLI entry point as ``main``.
"""
__version__ = "0.1.0"

# ``spaider.cli`` must stay bound to the module so its globals can be patched.
from .cli import cli as main

__all__ = ["main", "__version__"]

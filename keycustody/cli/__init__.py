"""keycustody command-line interface."""

from keycustody import __version__

__all__ = ["__version__"]

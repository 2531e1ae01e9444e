"""keycustody - custody and rotation of the fleet-wide SSH admin key."""

__version__ = "0.1.0"

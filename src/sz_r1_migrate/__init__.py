"""SmartZone to RUCKUS One AP migration tool."""

__version__ = "0.1.0"

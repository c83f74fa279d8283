"""LeadPilot: WhatsApp conversation automation for coaching tenants."""

from .__version__ import __version__

__all__ = ["__version__"]

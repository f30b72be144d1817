"""vaultsync - Background note synchronization client."""

__version__ = "0.1.0"

"""vaultsync client: API access, local stores, sync engine and CLI."""

"""Domain, storage and configuration for the DanPhoto API."""

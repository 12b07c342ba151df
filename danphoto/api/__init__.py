"""HTTP surface of the DanPhoto API."""

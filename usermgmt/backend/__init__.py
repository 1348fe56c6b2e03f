"""HTTP layer for the account sidecar."""

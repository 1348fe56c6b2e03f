"""
tinyauth User Management

Account-management sidecar for the tinyauth proxy: sessions, password
resets, signups, TOTP enrollment and password sync to external systems.
"""

__version__ = "1.0.0"

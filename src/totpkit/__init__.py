"""totpkit: TOTP secrets, codes and provisioning URIs for second-factor auth."""

__version__ = "0.1.0"

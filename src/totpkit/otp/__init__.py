"""RFC 4226 / RFC 6238 engines and the otpauth:// provisioning codec."""

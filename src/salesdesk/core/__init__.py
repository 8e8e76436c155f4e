"""Core infrastructure shared by the CRM layers (logging setup)."""

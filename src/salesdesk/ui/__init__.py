"""View-models for the CRM record layer: form controllers and list views."""

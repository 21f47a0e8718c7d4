"""Access token validation and role checks."""

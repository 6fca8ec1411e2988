"""Security: roles, encryption, audit log and monitoring."""

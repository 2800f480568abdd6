"""AuditLens service layer."""

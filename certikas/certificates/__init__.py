"""Certificate lifecycle: entity, issuance engine and confirmation tracking."""

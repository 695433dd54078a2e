"""Domain services for webhook verification, decoding and reconciliation."""

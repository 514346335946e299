"""Pure domain types for the billing kernel (zero I/O)."""

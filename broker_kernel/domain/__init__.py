"""Pure domain types for the broker kernel. No I/O."""

"""Pure value types and state derivation for orders."""

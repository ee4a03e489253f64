"""Pure domain layer: value objects, transition tables, ledger planning."""

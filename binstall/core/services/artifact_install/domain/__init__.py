"""L1 Domain — pure decisions, no I/O."""

"""Channel-scoped review queue with at-most-once event admission."""

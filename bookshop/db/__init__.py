"""Engine/session helpers and schema migrations for the slot table."""

"""Pure domain logic: no database, no services."""

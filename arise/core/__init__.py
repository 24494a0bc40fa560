"""Infrastructure layer: config, logging, database, events, clock."""

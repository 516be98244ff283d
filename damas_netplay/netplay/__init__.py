"""Wire protocol, input sanitization and peer move validation for the relay."""

"""Plan storage: database repository and file store."""

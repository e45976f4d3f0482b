"""Plan filtering and the conversational assistant."""

"""Pure domain model for the lead lifecycle: entities, errors and the transition table."""

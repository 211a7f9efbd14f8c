"""Domain layer: records, value objects, events and exceptions."""

"""Domain layer - instance lifecycle rules independent of scheduling."""

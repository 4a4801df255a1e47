"""Wire models and error types."""

"""HTTP routes for the field-service backend."""

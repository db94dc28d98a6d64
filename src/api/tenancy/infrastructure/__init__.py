"""Infrastructure adapters for the tenancy bounded context."""

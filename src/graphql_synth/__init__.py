"""GraphQL operation synthesis over a vector-indexed schema."""

__version__ = "0.1.0"

"""Command line interface for the OpenAPI directory."""

"""Command-line interface for BRICK input channels."""

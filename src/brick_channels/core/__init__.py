"""Core components of the BRICK input channels."""

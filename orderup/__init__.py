"""Group ordering for cafes and restaurants."""

"""Art request intake service."""

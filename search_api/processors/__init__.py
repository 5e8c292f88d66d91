"""Text processing helpers shared by the built-in backends."""

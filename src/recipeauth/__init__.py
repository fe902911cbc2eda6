"""Session lifecycle service for the recipe-sharing app."""

__version__ = "0.1.0"

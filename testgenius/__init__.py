"""TestGenius: AI-generated multiple-choice tests."""

__version__ = "0.1.0"

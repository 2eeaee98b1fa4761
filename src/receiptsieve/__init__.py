"""receiptsieve: turn order and receipt emails into purchase records."""

__version__ = "0.1.0"

"""Repository size, language and contribution analysis with report delivery."""

__version__ = "0.2.0"

"""Entry point for python -m tidy_kg execution.

This module enables running tidy-kg as a module:
    python -m tidy_kg --help
    python -m tidy_kg candidates --domain cybersec
"""

from tidy_kg.cli import app

if __name__ == "__main__":
    app()

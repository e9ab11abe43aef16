"""CLI entry point.

Allows running the CLI as a module: python -m catalog_migrator.cli
"""

from catalog_migrator.cli import app

if __name__ == "__main__":
    app()

"""Allow running as: python -m parley"""

from .cli import cli

if __name__ == "__main__":
    cli()

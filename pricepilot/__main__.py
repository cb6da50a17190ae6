"""Entry point for python -m pricepilot."""

from pricepilot.cli import app

if __name__ == "__main__":
    app()

"""Entry point for running relaybot as a module.

Allows running the application with:
    python -m relaybot

This delegates to the Typer CLI app.
"""

from relaybot.cli import app

if __name__ == "__main__":
    app()

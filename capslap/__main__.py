"""Entry point for `python -m capslap`."""

from capslap.cli.commands import app

if __name__ == "__main__":
    app()

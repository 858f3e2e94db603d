"""Entry point for ``python -m boardfiles``."""

from .cli import app

if __name__ == "__main__":
    app(prog_name="boardfiles")

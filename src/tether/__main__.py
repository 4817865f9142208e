"""Run the tether CLI with ``python -m tether``."""

from tether.cli import app

if __name__ == "__main__":
    app()

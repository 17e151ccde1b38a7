"""Allow ``python -m gateway_monitor``."""

from .main import cli

if __name__ == "__main__":
    cli()

"""Main function for behavstates."""

from behavstates.core import cli


def run_main() -> None:
    """Main entry point to behavstates."""
    cli.app()


if __name__ == "__main__":
    cli.app()

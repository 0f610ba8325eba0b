"""Main entry point for the PaperDesk application."""

from src.cli.main import cli_main

if __name__ == "__main__":
    cli_main()

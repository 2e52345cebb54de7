"""CLI entry point for python -m moviepipe"""
from moviepipe.cli.commands import app

if __name__ == "__main__":
    app()

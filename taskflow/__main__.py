"""
Entry point for running taskflow as a module: python -m taskflow
"""

from taskflow.cli.commands import app

if __name__ == "__main__":
    app()

"""
Portfolio Planner - Main Entry Point
=====================================
Run this file to start the portfolio planner CLI.
Usage: python main.py
"""

from planner.cli import CLI
from planner.logging_config import setup_logging


def main():
    setup_logging()
    cli = CLI()
    cli.run()


if __name__ == "__main__":
    main()

"""Allow ``python -m src.cli`` execution (runs the analyze command)."""

from src.cli.analyze import main

main()

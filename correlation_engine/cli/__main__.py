"""Allow ``python -m correlation_engine.cli`` execution."""

from correlation_engine.cli.connections import main

main()

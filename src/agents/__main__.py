from agents.cli import cli

cli()

from improvement.cli import cli

cli()

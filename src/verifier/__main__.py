from verifier.cli import cli

cli()

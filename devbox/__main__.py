from devbox.main import cli

cli()

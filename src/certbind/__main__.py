"""Allow ``python -m certbind -c config.yaml ...``."""

from certbind.cli.main import main

main()

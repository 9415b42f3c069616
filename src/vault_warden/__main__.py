import sys

from .cli.main import cli_main

sys.exit(cli_main())

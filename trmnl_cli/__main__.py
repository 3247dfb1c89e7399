import sys

from trmnl_cli.cli import main

sys.exit(main())

import sys

from ticketmint.cli import main

sys.exit(main())

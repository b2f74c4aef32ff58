import sys

from identity_console.cli import main

sys.exit(main())

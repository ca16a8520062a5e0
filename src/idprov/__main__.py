import sys

from idprov.cli import main

sys.exit(main())

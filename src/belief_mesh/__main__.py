import sys

from .cli.simulate import main

sys.exit(main())

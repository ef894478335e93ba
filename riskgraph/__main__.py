import sys

from .view import main

sys.exit(main())

import sys

from vpat_scorer.cli import main

sys.exit(main())

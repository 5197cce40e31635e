import sys

from buck_sim.cli import main

sys.exit(main())

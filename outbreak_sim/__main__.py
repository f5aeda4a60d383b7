import sys

from outbreak_sim.cli import main

sys.exit(main())

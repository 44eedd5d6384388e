import sys

from rpg_narrator.cli import main

sys.exit(main())

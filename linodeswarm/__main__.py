import sys

from linodeswarm.cli import main

sys.exit(main())

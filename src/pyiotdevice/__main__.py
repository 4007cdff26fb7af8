import sys

from pyiotdevice.cli import main

sys.exit(main())

import sys

from gridraffle.app import main

sys.exit(main())

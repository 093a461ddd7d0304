import sys
from outputctl.app import main

sys.exit(main())

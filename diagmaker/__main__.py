import sys

from diagmaker.editor import main

sys.exit(main())

import sys

from blob_loader.cli import main

sys.exit(main())

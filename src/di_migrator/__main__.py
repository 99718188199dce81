import sys

from di_migrator.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())

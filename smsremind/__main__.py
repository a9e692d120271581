import sys

from smsremind.cli import main

sys.exit(main())

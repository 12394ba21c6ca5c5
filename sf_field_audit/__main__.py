import sys

from sf_field_audit.cli import main

sys.exit(main())

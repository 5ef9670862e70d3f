import sys

from voucher_staging.cli import main

sys.exit(main())

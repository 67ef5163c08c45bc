import sys

from commission_sync.cli import run

sys.exit(run())

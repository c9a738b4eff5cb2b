"""
This is a minimal entry point script for the worker process.

Its sole responsibility is to hand over to the `run` command, so service
managers can launch the worker with `python -m totalrecall.script_entry.worker`.
"""
import sys
from totalrecall.main import main


if __name__ == "__main__":
    sys.exit(main(["run", *sys.argv[1:]]))

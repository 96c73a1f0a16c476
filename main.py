"""
Main entry point for the port scanner

Runs the terminal scanner from a source checkout, without installing the
package. The CLI itself loads settings from a .env file before parsing flags.
"""

import sys

from portprobe.main import main

if __name__ == "__main__":
    sys.exit(main())

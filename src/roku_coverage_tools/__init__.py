"""
Roku Coverage Tools - Collect line coverage from a Roku unit-test build

This package drives a coverage run against a Roku device on the local network.
It includes:

- **Manifest toggling** that switches ``bs_const`` into unit-test mode and
  always puts the original back
- **Build & deploy supervision** of the BrighterScript compiler (``bsc``)
- **Debug console capture** over the device's telnet port, extracting the
  lcov report printed between coverage markers
- **Report normalization** that maps compiled ``.brs`` paths back to ``.bs``
  sources and drops generated files
- **Converging shutdown** that restores state and sends the device home no
  matter how the run ends
"""

import logging

logging.getLogger("roku_coverage_tools").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Credentials are read from the environment first, then from the project's
# .env file — no secrets in the codebase.
#   ROKU_DEV_TARGET / ROKU_DEV_PASS
ENV_HOST_KEY = "ROKU_DEV_TARGET"
ENV_PASSWORD_KEY = "ROKU_DEV_PASS"
SETTINGS_FILENAME = ".env"

# Device ports
CONSOLE_PORT = 8085  # BrightScript debug console (plain-text telnet)
ECP_PORT = 8060      # External Control Protocol (HTTP)
HOME_KEYPRESS_PATH = "/keypress/Home"

# Timeout settings
CAPTURE_TIMEOUT = 300   # seconds from console open until forced shutdown
CONNECT_TIMEOUT = 30
KEYPRESS_TIMEOUT = 5

# Console markers printed by the test runner around the lcov report
COVERAGE_START_MARKER = "+-=-coverage:start"
COVERAGE_END_MARKER = "+-=-coverage:end"
COVERAGE_MARKER_PREFIX = "+-=-coverage"
REPORT_BANNER = "Generating lcov.info file"

# Project layout
MANIFEST_RELATIVE_PATH = "src/manifest"
REPORT_FILENAME = "lcov.info"
DEFAULT_BSCONFIG = "bsconfig-tests.json"

# Manifest key switched on for the coverage build
BS_CONST_KEY = "bs_const"
UNITTEST_BS_CONST = "debug=true;unittest=true"

# lcov tracefile conventions
SOURCE_FILE_PREFIX = "SF:"
END_OF_RECORD = "end_of_record"
GENERATED_PATH_SEGMENT = "/generated/"
COMPILED_EXTENSION = ".brs"
SOURCE_EXTENSION = ".bs"

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1

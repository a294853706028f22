"""
XCDM Configuration - Centralized path and settings management.

This module contains all configurable names and settings for the model editor.
Users can modify these values (or the XCDM_* environment variables) to
customize the behavior of the editor.
"""
import os
from pathlib import Path

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# REPL command history
HISTORY_FILE = Path(os.environ.get("XCDM_HISTORY_FILE", Path.home() / ".xcdm_history"))


# =============================================================================
# PACKAGE LAYOUT
# =============================================================================
# <Package>.xcdatamodeld/<Version>.xcdatamodel/contents + .xccurrentversion

PACKAGE_SUFFIX = ".xcdatamodeld"
VERSION_SUFFIX = ".xcdatamodel"
CONTENTS_FILE = "contents"
CURRENT_VERSION_FILE = ".xccurrentversion"
CURRENT_VERSION_KEY = "_XCCurrentVersionName"

# Name used for new documents and for packages without any loadable version
DEFAULT_MODEL_NAME = "Untitled"


# =============================================================================
# MODEL METADATA
# =============================================================================
# Written on the root <model> element of every encoded version. They carry no
# meaning for the editor but the external tool refuses documents without them.

MODEL_METADATA = {
    "type": "com.apple.IDECoreDataModeler.DataModel",
    "documentVersion": "1.0",
    "lastSavedToolsVersion": "14000",
    "systemVersion": "14.0",
    "minimumToolsVersion": "Automatic",
}

XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'

FETCH_REQUEST_NAME = "fetchedPropertyFetchRequest"


# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("XCDM_LOG_LEVEL", "WARNING").upper()
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

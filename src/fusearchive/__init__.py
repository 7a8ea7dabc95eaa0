"""
fusearchive — browse archives as directories.

Mounts archive files through an external FUSE tool, tracks every mount
point it creates, and unmounts them cleanly back to where you came from.
"""

import os

__version__ = "0.1.0"

CONFIG_FILE = os.environ.get("FUSEARCHIVE_CONFIG")

from pathlib import Path
from typing import Optional


class CouchSyncGlobal:
    http_log_path: Optional[Path] = None
    """Gets or sets the directory that HTTP traffic is recorded into (None disables recording)"""

    label: str = "couchsync"
    """Gets or sets the label used to name recorded HTTP traffic (tests set this to the running test name)"""

"""Start covrig in every Python process launched by ``covrig run``."""

import os

if os.environ.get("COVRIG_CWD"):
    from covrig.startup import process_startup

    process_startup()

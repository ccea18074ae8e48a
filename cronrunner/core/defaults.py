"""Shared default constants for the cronrunner library."""

# Fixed sleep between two passes of the scheduling loop, in milliseconds.
POLL_INTERVAL_MS: int = 100

# A job is ready when its next fire time is at most this far away.
# Matched to POLL_INTERVAL_MS so a tick landing between two polls is still
# caught by the next poll before it passes.
READINESS_THRESHOLD_MS: int = 100

# How long Runner.stop() waits for the cancelled loop task to settle.
STOP_TIMEOUT_MS: int = 1_000

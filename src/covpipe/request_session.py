import os

from .http_retry import create_retry_session

# No retries unless asked for: a failed download fails the pipeline
session = create_retry_session(
    total=int(os.environ.get("COVPIPE_HTTP_RETRIES", "0")),
    backoff_factor=float(os.environ.get("COVPIPE_HTTP_BACKOFF_FACTOR", "1.5")),
    timeout=float(os.environ.get("COVPIPE_HTTP_TIMEOUT", "120.0")),
)

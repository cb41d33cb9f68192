"""
Job identifiers for sync and bulk runs.
"""

import uuid
from django.utils import timezone


def generate_job_id(prefix: str) -> str:
    """
    Generate a traceable job identifier: {prefix}-{YYYYMMDD}-{random}.

    Example: "ffn-poll-20250201-a3f9b2c1"

    Uniqueness is probabilistic. The identifier correlates log lines and audit
    entries; it is never a primary key and never used for exactly-once checks.

    Args:
        prefix: Service or operation prefix (e.g. "ffn-poll", "bulk-hold")

    Returns:
        Job identifier string
    """
    if not prefix:
        raise ValueError("Job id prefix is required")
    datestamp = timezone.now().strftime('%Y%m%d')
    return f"{prefix}-{datestamp}-{uuid.uuid4().hex[:8]}"

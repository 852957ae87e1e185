"""Minute bucketing of unix timestamps.

Historical prices are requested, cached and looked up per 60-second bucket.
"""

BUCKET_SECONDS = 60


def bucket(timestamp: int) -> int:
    """Round a unix timestamp (seconds) down to its minute boundary.

    Idempotent, and 0 <= timestamp - bucket(timestamp) < 60 for every
    integer input.
    """
    return timestamp - (timestamp % BUCKET_SECONDS)

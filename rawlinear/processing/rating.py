"""
Star-rating filter for rawlinear

Thresholds follow the usual editor convention: -1 includes rejected
images, 0 excludes only rejected ones, 1-5 require at least that many stars.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

REJECTED = -1
MIN_THRESHOLD = -1
MAX_THRESHOLD = 5


def effective_rating(rating: Optional[Any]) -> int:
    """Unrated images count as 0 stars."""
    if rating is None:
        return 0
    return int(rating)


def is_eligible(rating: Optional[Any], threshold: int) -> bool:
    """
    Decide whether an image passes the rating threshold.

    Args:
        rating: Rating read from metadata, None if the tag is absent
        threshold: Minimum rating, MIN_THRESHOLD..MAX_THRESHOLD

    Returns:
        True if the effective rating is at least the threshold
    """
    return effective_rating(rating) >= threshold


class RatingFilter:
    """Applies a fixed threshold to RAW files"""

    def __init__(self, threshold: int = MIN_THRESHOLD):
        if not MIN_THRESHOLD <= threshold <= MAX_THRESHOLD:
            raise ValueError(f"Rating threshold must be in {MIN_THRESHOLD}..{MAX_THRESHOLD}")
        self.threshold = threshold

    def accepts(self, raw_file) -> bool:
        eligible = is_eligible(raw_file.rating, self.threshold)
        if not eligible:
            logger.info(f"{raw_file.basename}: rating {effective_rating(raw_file.rating)} "
                        f"below threshold {self.threshold}")
        return eligible

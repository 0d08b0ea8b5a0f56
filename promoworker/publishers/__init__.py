"""Publication adapters and post composition."""

from promoworker.publishers.base import BasePublisher
from promoworker.publishers.compose import compose_post, extract_links, format_link_comment
from promoworker.publishers.facebook import FacebookPublisher

__all__ = [
    "BasePublisher",
    "FacebookPublisher",
    "compose_post",
    "extract_links",
    "format_link_comment",
]

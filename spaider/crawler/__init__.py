"""spaider.crawler: asynchronous collector that fetches pages and reports links and responses."""

from .collector import Collector
from .models import Link, Request, Response

__all__ = ["Collector", "Link", "Request", "Response"]

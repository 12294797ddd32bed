"""
media/ — Image preparation and the local image host used by legacy gateways.
"""

from miraiclient.media.image_host import ImageHost
from miraiclient.media.images import convert_to_png, normalize_image, sniff_image_format

__all__ = ["ImageHost", "convert_to_png", "normalize_image", "sniff_image_format"]

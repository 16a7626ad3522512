"""
HashCalculator component for item identities.
Used when an item has neither a guid, a link nor a title to identify it.
"""
import hashlib

from models.feed import FeedItem


class HashCalculator:
    """
    Calculates content hashes for feed items.
    Uses SHA-256 so identical content always maps to the same guid.
    """

    @staticmethod
    def calculate_hash(item: FeedItem) -> str:
        """
        Calculates a stable identity for an item from its content.

        Hash includes:
        - Description
        - Author
        - Date (ISO, when present)
        - Enclosure URL

        Args:
            item: FeedItem to hash

        Returns:
            SHA-256 hash string
        """
        date_str = item.date.isoformat() if item.date else ""
        raw = f"{item.description}|{item.author}|{date_str}|{item.enclosure.url}"
        return hashlib.sha256(raw.encode()).hexdigest()

    @staticmethod
    def calculate_simple_hash(text: str) -> str:
        """
        Calculates a simple hash for any text content.

        Args:
            text: Text to hash

        Returns:
            SHA-256 hash string
        """
        return hashlib.sha256(text.encode()).hexdigest()

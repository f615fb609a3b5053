"""
Crisis keyword detection.
"""

from impact_intake.processing.config import DEFAULT_CRISIS_KEYWORDS


class CrisisDetector:
    """
    Case-insensitive substring match against a keyword set.

    A match is advisory: it sets the crisis flag and raises an alert event,
    nothing else in processing depends on it.
    """

    def __init__(self, keywords: list[str] | tuple[str, ...] = DEFAULT_CRISIS_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords if k)
        if not self.keywords:
            raise ValueError("CrisisDetector requires at least one keyword")

    def matches(self, content: str | None) -> list[str]:
        """
        Keywords found in the content, in keyword-set order.

        Examples:
            >>> CrisisDetector().matches("This is an URGENT case")
            ['urgent']
            >>> CrisisDetector().matches("nothing unusual")
            []
        """
        if not content:
            return []
        lowered = content.lower()
        return [keyword for keyword in self.keywords if keyword in lowered]

    def is_crisis(self, content: str | None) -> bool:
        return bool(self.matches(content))

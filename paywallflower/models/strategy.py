from datetime import datetime

from pydantic import BaseModel, Field

from paywallflower.models.bypass import utcnow


class DomainStrategy(BaseModel):
    """Learned method ordering and exclusions for one domain."""

    domain: str
    preferred_methods: list[str] = []
    blacklisted_methods: set[str] = set()
    total_attempts: int = 0
    successful_attempts: int = 0
    last_updated: datetime = Field(default_factory=utcnow)
    seeded: bool = False

    def prefer(self, method: str) -> None:
        if method in self.preferred_methods:
            self.preferred_methods.remove(method)
        self.preferred_methods.insert(0, method)
        self.blacklisted_methods.discard(method)

    def blacklist(self, method: str) -> bool:
        """Blacklist a method. Returns True if it was newly added."""
        if method in self.preferred_methods:
            self.preferred_methods.remove(method)
        if method in self.blacklisted_methods:
            return False
        self.blacklisted_methods.add(method)
        return True

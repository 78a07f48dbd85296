import enum


class EntityType(str, enum.Enum):
    """Kinds of records that own a single image slot."""

    AVATAR = "avatar"
    AIRCRAFT = "aircraft"
    BUILD = "build"
    GEAR = "gear"
    OTHER = "other"

    @classmethod
    def parse(cls, raw, default=None):
        """Return the member for ``raw`` or raise ValueError.

        Blank input yields ``default`` when one is given.
        """
        value = (raw or "").strip().lower()
        if not value:
            if default is not None:
                return default
            raise ValueError("entity type is required")
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid entity type: {raw}") from None


class ModerationStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PENDING_REVIEW = "PENDING_REVIEW"

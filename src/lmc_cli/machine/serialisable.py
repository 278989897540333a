"""Serialisable class"""
import datetime
from dataclasses import asdict


class Serialisable:
    """A basic serialisation mixin.

    The inheriting class must be a dataclass. The mixin itself is not one, so
    that frozen and mutable dataclasses can both use it.

    """

    def serialise(self):
        """Produce a JSON-serialisable object"""
        return asdict(self)

    @classmethod
    def deserialise(cls, item: dict):
        return cls(**item)


def now_str() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()

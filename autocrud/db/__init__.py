"""Resource accessors for autocrud.

Provides the accessor contract generated routes depend on and two
implementations: an in-memory store and a MongoDB store built on Motor.
"""

from .memory import MemoryQuery, MemoryResource
from .mongodb import MotorQuery, MotorResource, to_object_id
from .resource import BaseResource, Document, Query, ResourceAccessor

__all__ = [
    "BaseResource",
    "Document",
    "Query",
    "ResourceAccessor",
    "MemoryQuery",
    "MemoryResource",
    "MotorQuery",
    "MotorResource",
    "to_object_id",
]

"""Database plumbing: declarative bases, engine/session management, immutability listeners."""

from lpo_kernel.db.base import Base, TrackedBase, UUIDString

__all__ = ["Base", "TrackedBase", "UUIDString"]

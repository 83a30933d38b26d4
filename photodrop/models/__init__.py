# Models package for PhotoDrop (imported for its side effect of registering tables)

from .project import Project
from .bucket import Bucket
from .session import GuestSession
from .upload import Upload
from .scan_event import ScanEvent

__all__ = [
    "Project",
    "Bucket",
    "GuestSession",
    "Upload",
    "ScanEvent",
]

"""Models package."""

from .connection import Connection
from .channel import Channel
from .video import Video
from .video_snapshot import VideoSnapshot
from .sync_run import SyncRun

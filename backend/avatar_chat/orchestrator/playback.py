# ordered playback of a multi-chunk avatar video
# the next chunk starts only after the current one reports its natural end

import re
from typing import Optional

_CAPTION_SENTENCE_RE = re.compile(r"[^.!?।]+[.!?।]*")


def caption_lines(text: str) -> list[str]:
    """split reply text into the sentences shown one after another as a running caption"""
    text = (text or "").strip()
    if not text:
        return []
    lines = [s.strip() for s in _CAPTION_SENTENCE_RE.findall(text) if s.strip()]
    return lines or [text]


class ChunkPlayback:
    def __init__(self, video_urls: list[str]):
        if not video_urls:
            raise ValueError("playback needs at least one video url")
        self.video_urls = list(video_urls)
        self.index = 0
        self.failed = False
        self.finished = False

    @property
    def total(self) -> int:
        return len(self.video_urls)

    def current(self) -> dict:
        return {"index": self.index, "url": self.video_urls[self.index], "total": self.total}

    def begin(self) -> dict:
        self.index = 0
        return self.current()

    def _is_current(self, index: int) -> bool:
        return not self.finished and not self.failed and index == self.index

    def chunk_ended(self, index: int) -> Optional[dict]:
        """
        Handle end-of-playback for chunk `index`.

        Returns the next chunk to play, or None. Events for any chunk other
        than the one playing are ignored. After the last chunk, `finished`
        becomes True.
        """
        if not self._is_current(index):
            return None
        if self.index + 1 >= self.total:
            self.finished = True
            return None
        self.index += 1
        return self.current()

    def chunk_failed(self, index: int) -> bool:
        """switch to the image fallback; False if the event is stale"""
        if not self._is_current(index):
            return False
        self.failed = True
        return True

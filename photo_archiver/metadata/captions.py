import logging
from typing import Any, Dict, List, Optional

from .. import config
from ..models import PhotoMetadata

PHOTO_ID_KEY = "photo_id"
CAPTION_KEY = "caption"


class PhotoMetadataCollector:
    """
    Walks a decoded record payload and collects every mapping that carries
    both a photo id and a caption, in document order.

    The walk uses an explicit stack (like the disk scanner it mirrors) so
    deeply nested repeatables cannot exhaust the interpreter stack, and
    stops descending past `max_depth`.
    """

    def __init__(self, max_depth: int = config.MAX_METADATA_DEPTH):
        self.max_depth = max_depth

    def collect(self, payload: Any) -> List[PhotoMetadata]:
        found: List[PhotoMetadata] = []
        stack = [(payload, 0)]

        while stack:
            node, depth = stack.pop()
            if depth > self.max_depth:
                logging.debug(f"Photo metadata scan stopped at depth {depth}")
                continue

            if isinstance(node, dict):
                match = self._as_photo(node)
                if match:
                    found.append(match)
                children = list(node.values())
            elif isinstance(node, (list, tuple)):
                children = list(node)
            else:
                continue

            # Push reversed so children are visited in document order
            for child in reversed(children):
                if isinstance(child, (dict, list, tuple)):
                    stack.append((child, depth + 1))

        return found

    def _as_photo(self, node: Dict[str, Any]) -> Optional[PhotoMetadata]:
        if PHOTO_ID_KEY not in node or CAPTION_KEY not in node:
            return None
        photo_id = node[PHOTO_ID_KEY]
        if photo_id is None:
            return None
        caption = node[CAPTION_KEY]
        return PhotoMetadata(
            photo_id=str(photo_id),
            caption=str(caption) if caption is not None else None,
        )


def collect_photo_metadata(payload: Any) -> List[PhotoMetadata]:
    return PhotoMetadataCollector().collect(payload)


def find_caption(photo_metadata: List[PhotoMetadata], photo_id: str) -> Optional[str]:
    """Returns the first non-empty caption recorded for `photo_id`."""
    for meta in photo_metadata:
        if meta.photo_id == photo_id and meta.caption and meta.caption.strip():
            return meta.caption
    return None

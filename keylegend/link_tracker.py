"""
LinkTracker - records clickable link regions for one render pass.

Boxes are stored in the unrotated local space of the key they belong to,
together with that key's rotation. Hit tests map the query point back into
local space before the box test.
"""

from dataclasses import dataclass
from typing import List, Optional

from keylegend.geometry import add, inverse_rotate


@dataclass(frozen=True)
class LinkBoundingBox:
    id: str
    href: str
    display_text: str
    local_x: float
    local_y: float
    local_width: float
    local_height: float
    rotation_angle: float = 0.0
    rotation_origin_x: float = 0.0
    rotation_origin_y: float = 0.0

    def contains_local(self, x: float, y: float) -> bool:
        return (
            self.local_x <= x <= add(self.local_x, self.local_width)
            and self.local_y <= y <= add(self.local_y, self.local_height)
        )


class LinkTracker:
    def __init__(self):
        self._links: List[LinkBoundingBox] = []
        self._next_id = 0

    def clear(self) -> None:
        """Drops all regions; called at the start of every full render pass."""
        self._links = []
        self._next_id = 0

    def register_link(
        self,
        href: str,
        display_text: str,
        local_x: float,
        local_y: float,
        local_width: float,
        local_height: float,
        rotation_angle: float = 0.0,
        rotation_origin_x: float = 0.0,
        rotation_origin_y: float = 0.0,
    ) -> LinkBoundingBox:
        box = LinkBoundingBox(
            id=f"link-{self._next_id}",
            href=href,
            display_text=display_text,
            local_x=local_x,
            local_y=local_y,
            local_width=local_width,
            local_height=local_height,
            rotation_angle=rotation_angle or 0.0,
            rotation_origin_x=rotation_origin_x,
            rotation_origin_y=rotation_origin_y,
        )
        self._next_id += 1
        self._links.append(box)
        return box

    def get_link_at_position(self, x: float, y: float) -> Optional[LinkBoundingBox]:
        """Topmost (last registered) link containing the canvas point, or None."""
        for box in reversed(self._links):
            local = inverse_rotate(x, y, box.rotation_angle, box.rotation_origin_x, box.rotation_origin_y)
            if box.contains_local(local.x, local.y):
                return box
        return None

    @property
    def links(self) -> List[LinkBoundingBox]:
        return list(self._links)

    @property
    def count(self) -> int:
        return len(self._links)

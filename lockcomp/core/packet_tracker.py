from typing import Any

import numpy as np


class PacketTracker:
    """
    Rolling 50ms count of outgoing packets (5 slots x 10ms).

    Several packets in flight at once queue behind each other on the server
    tick, so the RTT measured for any one of them is inflated. The count is
    turned into a trust weight for the next RTT sample.
    """

    SLOT_COUNT = 5
    SLOT_DURATION = 0.01
    # absorbs float drift when frame deltas add up to an exact slot boundary
    _EPSILON = 1e-9

    def __init__(self):
        self._slots = np.zeros(self.SLOT_COUNT, dtype=np.int64)
        self._index = 0
        self._timer = 0.0

    @property
    def total_packets_sent(self) -> int:
        return int(self._slots.sum())

    def record_packet(self, payload: Any = None) -> None:
        # payload is kept for future packet classification
        self._slots[self._index] += 1

    def update(self, delta_time: float) -> None:
        """Age the window; call every frame with the frame delta in seconds."""
        self._timer += delta_time
        while self._timer >= self.SLOT_DURATION - self._EPSILON:
            self._timer -= self.SLOT_DURATION
            self._index = (self._index + 1) % self.SLOT_COUNT
            self._slots[self._index] = 0

    def get_rtt_weight(self) -> float:
        sent = self.total_packets_sent
        if sent <= 1:
            return 1.0
        if sent == 2:
            return 0.5
        if sent == 3:
            return 0.25
        return 0.1

    def reset(self) -> None:
        self._slots.fill(0)
        self._index = 0
        self._timer = 0.0

import datetime
import math
from typing import Callable, Dict, Optional, Tuple

from lockcomp.core.host import IGameHost
from lockcomp.logger import f2ms, logger

CASTER_TAX_LOCK = 0.1


class EncounterStats:
    """
    Combat-scoped clip and wasted-GCD accounting.

    A clip is animation lock still running when a new GCD starts. Wasted GCD
    time is time spent with nothing queued, no recast and no lock.
    """

    def __init__(self, host: IGameHost, last_action_id: Callable[[], int] = lambda: 0,
                 clock: Callable[[], datetime.datetime] = datetime.datetime.now):
        self.host = host
        self.last_action_id = last_action_id
        self.clock = clock
        self.log_details = False

        self.begun_encounter: Optional[datetime.datetime] = None
        self.last_detected_clip: Optional[int] = None
        self.current_wasted_gcd = 0.0
        self.total_clip = 0.0
        self.total_waste = 0.0
        self.clip_count = 0
        self.gcd_count = 0
        self.per_action_clips: Dict[int, Tuple[float, int]] = {}
        self.last_summary = ""

    @property
    def in_encounter(self) -> bool:
        return self.begun_encounter is not None

    def begin_encounter(self) -> None:
        self.begun_encounter = self.clock()
        self.total_clip = 0.0
        self.total_waste = 0.0
        self.clip_count = 0
        self.gcd_count = 0
        self.current_wasted_gcd = 0.0
        self.per_action_clips.clear()

    def end_encounter(self) -> str:
        span = self.clock() - self.begun_encounter
        seconds = int(span.total_seconds())
        formatted = f"{seconds // 60:02d}:{seconds % 60:02d}"
        avg_clip = self.total_clip / self.clip_count if self.clip_count else 0.0

        self.last_summary = (f"[{formatted}] Clip: {self.total_clip:.2f}s ({self.clip_count} clips, "
                             f"avg {f2ms(avg_clip)} ms), Waste: {self.total_waste:.2f}s")
        logger.info(f"EncounterStats: Encounter stats: {self.last_summary}")

        if self.log_details and self.per_action_clips:
            logger.info("EncounterStats: Per-action clip breakdown:")
            for action_id, (total, count) in self.per_action_clips.items():
                logger.info(f"EncounterStats:   Action {action_id}: {f2ms(total)} ms total, "
                            f"{count} clips, avg {f2ms(total / count)} ms")

        self.begun_encounter = None
        return self.last_summary

    def update(self, delta_time: float) -> None:
        if self.host.in_combat():
            if not self.in_encounter:
                self.begin_encounter()
            self._detect_clipping()
            self._detect_wasted_gcd(delta_time)
        elif self.in_encounter:
            self.end_encounter()

    def _detect_clipping(self) -> None:
        animation_lock = self.host.get_animation_lock()
        sequence = self.host.get_current_sequence()
        if (sequence == self.last_detected_clip
                or self.host.is_gcd_recast_active()
                or animation_lock <= 0):
            return

        self.gcd_count += 1

        # A bare caster tax is expected, not a clip
        if not math.isclose(animation_lock, CASTER_TAX_LOCK, abs_tol=1e-6):
            self.total_clip += animation_lock
            self.clip_count += 1

            action_id = self.last_action_id()
            if action_id:
                total, count = self.per_action_clips.get(action_id, (0.0, 0))
                self.per_action_clips[action_id] = (total + animation_lock, count + 1)

            if self.log_details:
                logger.info(f"EncounterStats: GCD Clip: {f2ms(animation_lock)} ms (action: {action_id})")

        self.last_detected_clip = sequence

    def _detect_wasted_gcd(self, delta_time: float) -> None:
        if not self.host.is_gcd_recast_active() and not self.host.is_queued():
            if self.host.get_animation_lock() > 0:
                return
            self.current_wasted_gcd += delta_time
        elif self.current_wasted_gcd > 0:
            self.total_waste += self.current_wasted_gcd
            if self.log_details:
                logger.info(f"EncounterStats: Wasted GCD: {f2ms(self.current_wasted_gcd)} ms")
            self.current_wasted_gcd = 0.0

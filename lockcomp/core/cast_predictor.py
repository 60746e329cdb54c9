import math

from lockcomp.core.events import ActionEffectEvent
from lockcomp.core.host import MAX_ANIMATION_LOCK, IGameHost
from lockcomp.core.ownership import LockOwner
from lockcomp.logger import f2ms, logger


class CastLockPredictor:
    """
    Pre-applies the caster tax the moment a cast completes client side.

    Without it the next action waits for the server's cast response before
    the (roughly 100ms) caster tax even starts. With it the lock is
    `caster_tax + floor` from the last frame of the cast, and the server
    value replaces it when the response lands.
    """

    # Within one frame of the cast finishing
    COMPLETION_WINDOW = 0.05

    def __init__(self, host: IGameHost, engine):
        self.host = host
        self.engine = engine
        self.is_casting = False
        self.lock_applied = False
        self.cast_sequence = 0

        self.last_predicted_cast_lock = 0.0
        self.last_actual_cast_lock = 0.0

    @property
    def awaiting_response(self) -> bool:
        return self.lock_applied

    def on_cast_begin(self, event=None) -> None:
        self.is_casting = True
        self.lock_applied = False
        self.cast_sequence = self.host.get_current_sequence()
        self.engine.arbiter.release(LockOwner.CAST)

    def on_cast_interrupt(self, event=None) -> None:
        self.is_casting = False
        self.lock_applied = False
        self.engine.arbiter.release(LockOwner.CAST)

    def on_frame(self, delta_time: float = 0.0) -> None:
        config = self.engine.config
        if not config.enable_anim_lock_comp or not config.enable_cast_lock_prediction:
            return
        if not self.is_casting or self.lock_applied:
            return
        if not self.host.is_casting():
            return

        cast_time, elapsed = self.host.get_cast_progress()
        if cast_time - elapsed > self.COMPLETION_WINDOW:
            return

        caster_tax = self.engine.config.caster_tax
        floor = self.engine.current_floor
        predicted = caster_tax + floor

        if not self.engine.is_read_only and self.engine.arbiter.try_claim(LockOwner.CAST, self.cast_sequence):
            self.host.set_animation_lock(predicted)

        self.lock_applied = True
        self.last_predicted_cast_lock = predicted
        logger.debug(f"CastLockPredictor: Cast lock pre-applied: {f2ms(predicted)} ms "
                     f"(tax={f2ms(caster_tax)}, floor={f2ms(floor)})")

    def reconcile(self, event: ActionEffectEvent) -> None:
        """Server response for the cast we pre-applied a lock for."""
        self.lock_applied = False
        self.is_casting = False
        self.last_actual_cast_lock = event.new_lock
        self.engine.arbiter.release(LockOwner.CAST)

        if self.engine.is_read_only:
            return

        # old_lock is what is left of our prediction; only a late response leaves
        # more than we predicted, carry that surplus over
        adjusted = event.new_lock + max(event.old_lock - self.last_predicted_cast_lock, 0.0)
        if math.isfinite(adjusted) and adjusted < MAX_ANIMATION_LOCK:
            self.host.set_animation_lock(adjusted)

        if self.engine.config.enable_logging:
            logger.info(f"CastLockPredictor: Cast Lock Corrected: predicted={f2ms(self.last_predicted_cast_lock)} ms, "
                        f"server={f2ms(event.new_lock)} ms, final={f2ms(adjusted)} ms")

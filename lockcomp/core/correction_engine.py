import copy
import math
from typing import Dict, Optional

from lockcomp.config import ConfigSnapshot
from lockcomp.core.dynamic_floor import DynamicFloor
from lockcomp.core.events import (
    ActionEffectEvent,
    ActionUsedEvent,
    EventBus,
    InterferenceDetectedEvent,
    UserWarningEvent,
    bus,
)
from lockcomp.core.host import DEFAULT_ANIMATION_LOCK, MAX_ANIMATION_LOCK, IGameHost
from lockcomp.core.lock_database import GameContext, LockDatabase
from lockcomp.core.ownership import LockArbiter, LockOwner
from lockcomp.core.packet_tracker import PacketTracker
from lockcomp.core.rtt_estimator import RTTEstimator
from lockcomp.logger import f2ms, logger, update_log_context


class CorrectionEngine:
    """
    Predict -> observe -> correct loop for the animation lock.

    On action use the learned lock plus the dynamic floor is written to the
    host right away and remembered under the action's sequence token. When
    the server answers, the time the prediction spent counting down is the
    round trip:

        rtt        = applied_lock - old_lock
        correction = new_lock - (applied_lock - floor)
        adjusted   = max(old_lock + correction + K * RTTVAR, 0)

    Read-only mode (dry run, or a foreign lock modifier was detected) runs
    every computation but never writes to the host.
    """

    def __init__(self, host: IGameHost, lock_db: LockDatabase,
                 config: Optional[ConfigSnapshot] = None,
                 event_bus: Optional[EventBus] = None,
                 total_actions_reduced: int = 0,
                 total_lock_reduction: float = 0.0):
        self.host = host
        self.lock_db = lock_db
        self.config = config or ConfigSnapshot()
        self.bus = event_bus or bus

        self.estimator = RTTEstimator(self.config.alpha, self.config.beta, self.config.k)
        self.floor = DynamicFloor(self.config.floor_window, self.config.floor_scaling)
        self.packets = PacketTracker()
        self.arbiter = LockArbiter()
        self.cast_predictor = None

        # sequence token -> lock written at dispatch
        self.pending: Dict[int, float] = {}
        self._is_casting = False
        self.interference_active = False
        self.save_pending = False

        # Lifetime statistics
        self.total_actions_reduced = total_actions_reduced
        self.total_lock_reduction = total_lock_reduction

        # Diagnostics
        self.last_action_id = 0
        self.last_predicted_lock = 0.0
        self.last_rtt = 0.0
        self.last_correction = 0.0
        self.last_variance_buffer = 0.0
        self.last_adjusted_lock = 0.0

    # --- Configuration ---

    def apply_config(self, config: ConfigSnapshot) -> None:
        self.config = config
        self.estimator.alpha = config.alpha
        self.estimator.beta = config.beta
        self.estimator.k = config.k
        self.floor.scaling_factor = config.floor_scaling
        self._update_mode_context()

    def attach_cast_predictor(self, predictor) -> None:
        self.cast_predictor = predictor

    @property
    def is_read_only(self) -> bool:
        return self.interference_active or self.config.dry_run

    @property
    def current_floor(self) -> float:
        return self.floor.floor

    def get_context(self) -> GameContext:
        try:
            return GameContext.PvP if self.host.is_pvp() else GameContext.PvE
        except Exception as e:
            logger.debug(f"CorrectionEngine: PvP query failed, assuming PvE: {e}")
            return GameContext.PvE

    def predict_lock(self, action_id: int, context: GameContext) -> float:
        return self.lock_db.get_lock(action_id, context, DEFAULT_ANIMATION_LOCK) + self.floor.floor

    # --- Host callbacks ---

    def on_action_used(self, event: ActionUsedEvent) -> None:
        # The action itself is an outgoing packet for burst weighting
        self.packets.record_packet(event)

        if self.host.get_animation_lock() != DEFAULT_ANIMATION_LOCK:
            return

        action_id = self.host.resolve_action_id(event.action_type, event.action_id)
        context = self.get_context()
        update_log_context("context", context.name)
        predicted = self.predict_lock(action_id, context)
        self.last_predicted_lock = predicted

        if not self.is_read_only:
            if not self.arbiter.try_claim(LockOwner.GENERAL, event.sequence):
                return
            self.host.set_animation_lock(predicted)
            self.pending[event.sequence] = predicted

        logger.debug(
            f"CorrectionEngine: Applying {f2ms(predicted)} ms animation lock for "
            f"{event.action_type} {event.action_id} ({action_id}), floor={f2ms(self.floor.floor)} ms"
        )

    def on_action_effect(self, event: ActionEffectEvent) -> None:
        try:
            self._handle_action_effect(event)
        except Exception as e:
            logger.error(f"CorrectionEngine: Error handling action effect for sequence {event.sequence}: {e}",
                         exc_info=True)

    def on_action_effect_ignored(self, event: ActionEffectEvent) -> None:
        """Compensation is off: learn nothing, but a cast waiting on this response is over."""
        if event.old_lock == event.new_lock or not event.is_local_actor:
            return
        self._is_casting = False
        predictor = self.cast_predictor
        if predictor is not None and predictor.awaiting_response:
            predictor.on_cast_interrupt()

    def on_cast_begin(self, event=None) -> None:
        self._is_casting = True

    def on_cast_interrupt(self, event=None) -> None:
        self._is_casting = False

    def on_packet_sent(self, event=None) -> None:
        self.packets.record_packet(event)

    def on_frame(self, delta_time: float) -> None:
        self.packets.update(delta_time)

    # --- Manual controls ---

    def clear_interference(self) -> None:
        if self.interference_active:
            logger.info("CorrectionEngine: Interference flag cleared, writes re-enabled")
        self.interference_active = False
        self._update_mode_context()

    def reset_estimators(self) -> None:
        self.estimator.reset()
        self.floor.reset()
        logger.info("CorrectionEngine: RTT estimator and dynamic floor reset")

    # --- Response pipeline ---

    def _handle_action_effect(self, event: ActionEffectEvent) -> None:
        old_lock = event.old_lock
        new_lock = event.new_lock
        if old_lock == new_lock or not event.is_local_actor:
            return

        predictor = self.cast_predictor
        if predictor is not None and predictor.awaiting_response:
            self._is_casting = False
            predictor.reconcile(event)
            return

        if self._is_casting:
            self._is_casting = False
            self._apply_cast_fallback(old_lock, new_lock)
            return

        if event.header_lock is not None and new_lock != event.header_lock:
            message = ("Mismatched animation lock offset! This can be caused by another "
                       "plugin affecting the animation lock.")
            logger.warning(f"CorrectionEngine: {message} (lock={f2ms(new_lock)} ms, "
                           f"header={f2ms(event.header_lock)} ms)")
            self.bus.publish(UserWarningEvent(message))
            return

        if not self.interference_active and self._looks_externally_modified(new_lock):
            self.interference_active = True
            self._update_mode_context()
            message = (f"Unexpected lock of {f2ms(new_lock)} ms, temporary dry run has been enabled. "
                       "Please disable any other programs or plugins that may be affecting the animation lock.")
            logger.warning(f"CorrectionEngine: {message}")
            self.bus.publish(InterferenceDetectedEvent(new_lock))
            self.bus.publish(UserWarningEvent(message))

        # Everything below is derived from snapshots before any model is touched
        sequence = event.sequence
        applied_lock = self.pending.get(sequence, DEFAULT_ANIMATION_LOCK)
        is_newest = sequence == self.host.get_current_sequence()
        current_floor = self.floor.floor
        weight = self.packets.get_rtt_weight()
        read_only = self.is_read_only
        learn = not self.interference_active
        context = self.get_context()

        recorded_prediction = new_lock if read_only else applied_lock - current_floor
        correction = new_lock - recorded_prediction
        rtt = applied_lock - old_lock
        below_floor = rtt <= current_floor

        # The host write is the last step that can fail; run it before committing anything
        estimator = self.estimator
        variance_buffer = 0.0
        adjusted_lock = new_lock
        written = False
        if not below_floor:
            estimator = copy.copy(self.estimator)
            estimator.add_sample(rtt, weight)
            variance_buffer = estimator.variance_buffer
            adjusted_lock = max(old_lock + correction + variance_buffer, 0.0)
            if not read_only and math.isfinite(adjusted_lock) and adjusted_lock < MAX_ANIMATION_LOCK:
                self.host.set_animation_lock(adjusted_lock)
                written = True

        self.pending.pop(sequence, None)
        if is_newest:
            # Tokens are monotonic: nothing older than the newest sequence is still outstanding
            self.pending.clear()
        if not self.pending:
            self.arbiter.release(LockOwner.GENERAL)

        self.last_action_id = event.action_id
        self.last_rtt = rtt

        if learn and self.lock_db.record_lock(event.action_id, context, new_lock):
            self.save_pending = True

        self.floor.add_sample(rtt)

        if below_floor:
            if self.config.enable_logging:
                logger.info(f"CorrectionEngine: RTT ({f2ms(rtt)} ms) was lower than floor "
                            f"({f2ms(current_floor)} ms), no adjustments made")
            self.last_correction = 0.0
            self.last_variance_buffer = 0.0
            self.last_adjusted_lock = new_lock
            return

        self.estimator = estimator
        self.last_correction = correction
        self.last_variance_buffer = variance_buffer
        self.last_adjusted_lock = adjusted_lock

        if written:
            self.total_lock_reduction += new_lock - adjusted_lock
            self.total_actions_reduced += 1
            self.save_pending = True

        self._log_correction(event, recorded_prediction, rtt, weight, correction,
                             variance_buffer, adjusted_lock, read_only)

    def _apply_cast_fallback(self, old_lock: float, new_lock: float) -> None:
        # Cast completion normally leaves no lock behind; late packets leave some, keep it
        new_lock += old_lock
        self.last_adjusted_lock = new_lock
        if not self.is_read_only and math.isfinite(new_lock) and new_lock < MAX_ANIMATION_LOCK:
            self.host.set_animation_lock(new_lock)
        if self.config.enable_logging:
            logger.info(f"CorrectionEngine: Cast Lock: {f2ms(new_lock)} ms (+{f2ms(old_lock)})")

    def _looks_externally_modified(self, new_lock: float) -> bool:
        """
        The server quantizes locks to 10ms. A remainder well inside a 10ms step
        means something rewrote the value on its way in (e.g. XivAlexander).
        Heuristic, so the band is configurable and the check can be disabled.
        """
        if not self.config.interference_detection or not math.isfinite(new_lock):
            return False
        band_lo, band_hi = self.config.interference_band_ms
        remainder = math.fmod(new_lock * 1000.0, 10.0)
        return band_lo <= remainder <= band_hi

    def _update_mode_context(self) -> None:
        if self.interference_active:
            mode = "readonly"
        elif self.config.dry_run:
            mode = "dry"
        else:
            mode = "active"
        update_log_context("mode", mode)

    def _log_correction(self, event, recorded_prediction, rtt, weight, correction,
                        variance_buffer, adjusted_lock, read_only) -> None:
        data = {
            "action_id": event.action_id,
            "sequence": event.sequence,
            "old_lock": event.old_lock,
            "new_lock": event.new_lock,
            "predicted": recorded_prediction,
            "rtt": rtt,
            "srtt": self.estimator.smoothed_rtt,
            "rttvar": self.estimator.rtt_variance,
            "floor": self.floor.floor,
            "weight": weight,
            "packets": self.packets.total_packets_sent,
            "adjusted_lock": adjusted_lock,
            "read_only": read_only,
        }

        parts = ["[DRY] " if read_only else ""]
        parts.append(f"Action: {event.action_id} ")
        if recorded_prediction != event.new_lock:
            parts.append(f"({f2ms(recorded_prediction)} > {f2ms(event.new_lock)} ms)")
        else:
            parts.append(f"({f2ms(event.new_lock)} ms)")
        parts.append(f" || RTT: {f2ms(rtt)} ms (SRTT: {f2ms(self.estimator.smoothed_rtt)}, "
                     f"VAR: {f2ms(self.estimator.rtt_variance)})")
        if self.interference_active:
            parts.append(" [external modifier detected]")
        if not read_only:
            parts.append(f" || Lock: {f2ms(event.old_lock)} > {f2ms(adjusted_lock)} "
                         f"({f2ms(correction + variance_buffer):+d}) ms")
        parts.append(f" || Floor: {f2ms(self.floor.floor)} ms | Wt: {weight:.2f} | "
                     f"Pkts: {self.packets.total_packets_sent}")

        message = "CorrectionEngine: " + "".join(parts)
        if self.config.enable_logging:
            logger.info(message, extra={"data": data})
        else:
            logger.debug(message, extra={"data": data})

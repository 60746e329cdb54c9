import unittest
from unittest.mock import MagicMock

from lockcomp.config import ConfigSnapshot
from lockcomp.core.correction_engine import CorrectionEngine
from lockcomp.core.events import (
    ActionEffectEvent, ActionUsedEvent, InterferenceDetectedEvent, UserWarningEvent, bus,
)
from lockcomp.core.host import SimulatedHost
from lockcomp.core.lock_database import GameContext, LockDatabase
from lockcomp.core.ownership import LockOwner


class EngineTestCase(unittest.TestCase):
    def setUp(self):
        bus.clear()
        self.warnings = []
        bus.subscribe(UserWarningEvent, self.warnings.append)
        self.host = SimulatedHost()
        self.db = LockDatabase()
        self.engine = self.make_engine()

    def tearDown(self):
        bus.clear()

    def make_engine(self, **config):
        return CorrectionEngine(self.host, self.db, config=ConfigSnapshot(**config))

    def dispatch(self, action_id=100):
        sequence = self.host.use_action()
        self.engine.on_action_used(ActionUsedEvent(1, action_id, sequence))
        return sequence

    def respond(self, sequence, old_lock, new_lock, action_id=100, header_lock="same", local=True):
        # The game applies the server lock before the hook sees it
        self.host.animation_lock = new_lock
        event = ActionEffectEvent(
            sequence=sequence,
            action_id=action_id,
            is_local_actor=local,
            old_lock=old_lock,
            new_lock=new_lock,
            header_lock=new_lock if header_lock == "same" else header_lock,
        )
        self.engine.on_action_effect(event)


class TestDispatch(EngineTestCase):
    def test_predicts_default_plus_floor(self):
        sequence = self.dispatch()
        self.assertAlmostEqual(self.host.animation_lock, 0.54)
        self.assertAlmostEqual(self.engine.pending[sequence], 0.54)
        self.assertEqual(self.engine.arbiter.owner, LockOwner.GENERAL)

    def test_uses_learned_lock(self):
        for _ in range(3):
            self.db.record_lock(100, GameContext.PvE, 0.6)
        self.dispatch()
        self.assertAlmostEqual(self.host.animation_lock, 0.64)

    def test_uses_pvp_partition(self):
        for _ in range(3):
            self.db.record_lock(100, GameContext.PvP, 0.8)
        self.host.pvp = True
        self.dispatch()
        self.assertAlmostEqual(self.host.animation_lock, 0.84)

    def test_skips_when_lock_not_at_idle_default(self):
        self.host.sequence = 4
        self.host.animation_lock = 0.3
        self.engine.on_action_used(ActionUsedEvent(1, 100, 4))
        self.assertEqual(self.host.animation_lock, 0.3)
        self.assertEqual(self.engine.pending, {})

    def test_resolves_canonical_action_id(self):
        self.host.resolve_action_id = MagicMock(return_value=555)
        for _ in range(3):
            self.db.record_lock(555, GameContext.PvE, 0.7)
        self.dispatch(action_id=100)
        self.assertAlmostEqual(self.host.animation_lock, 0.74)

    def test_dry_run_computes_but_does_not_write(self):
        self.engine = self.make_engine(dry_run=True)
        self.dispatch()
        self.assertEqual(self.host.animation_lock, 0.5)
        self.assertEqual(self.engine.pending, {})
        self.assertAlmostEqual(self.engine.last_predicted_lock, 0.54)

    def test_dispatch_counts_as_packet(self):
        self.dispatch()
        self.assertEqual(self.engine.packets.total_packets_sent, 1)


class TestServerResponse(EngineTestCase):
    def test_end_to_end_correction(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)

        self.assertAlmostEqual(self.engine.last_rtt, 0.34)
        self.assertAlmostEqual(self.engine.estimator.smoothed_rtt, 0.34)
        self.assertAlmostEqual(self.engine.last_correction, 0.0)
        # variance buffer = K * (0.34 / 2)
        self.assertAlmostEqual(self.engine.last_variance_buffer, 0.34)
        self.assertAlmostEqual(self.host.animation_lock, 0.2 + 0.0 + 0.34)
        self.assertEqual(self.engine.total_actions_reduced, 1)
        self.assertEqual(self.engine.pending, {})
        self.assertEqual(self.engine.arbiter.owner, LockOwner.UNOWNED)
        self.assertEqual(self.db.get_entry(100, GameContext.PvE).mean_lock, 0.5)
        self.assertEqual(self.engine.floor.sample_count, 1)
        self.assertTrue(self.engine.save_pending)

    def test_rtt_below_floor_makes_no_adjustment(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.52, new_lock=0.5)

        self.assertAlmostEqual(self.engine.last_rtt, 0.02)
        self.assertEqual(self.engine.floor.sample_count, 1)
        self.assertEqual(self.engine.estimator.sample_count, 0)
        self.assertEqual(self.engine.last_correction, 0.0)
        self.assertEqual(self.engine.last_adjusted_lock, 0.5)
        self.assertEqual(self.host.animation_lock, 0.5)
        self.assertEqual(self.engine.total_actions_reduced, 0)

    def test_noop_and_foreign_responses_ignored(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.5, new_lock=0.5)
        self.respond(sequence, old_lock=0.2, new_lock=0.6, local=False)
        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.engine.floor.sample_count, 0)
        self.assertIn(sequence, self.engine.pending)

    def test_mismatch_aborts_without_learning(self):
        sequence = self.dispatch()
        with self.assertLogs("lockcomp", level="WARNING") as logs:
            self.respond(sequence, old_lock=0.2, new_lock=0.5, header_lock=0.6)
        self.assertTrue(any("Mismatched" in line for line in logs.output))
        self.assertEqual(len(self.warnings), 1)
        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.engine.floor.sample_count, 0)
        self.assertIn(sequence, self.engine.pending)

    def test_missing_header_lock_skips_mismatch_check(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5, header_lock=None)
        self.assertEqual(len(self.db), 1)

    def test_interference_switches_to_read_only(self):
        detected = []
        bus.subscribe(InterferenceDetectedEvent, detected.append)

        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5123)

        self.assertTrue(self.engine.interference_active)
        self.assertTrue(self.engine.is_read_only)
        self.assertEqual(len(detected), 1)
        self.assertEqual(len(self.warnings), 1)
        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.host.animation_lock, 0.5123)

        # Sticky, warned once, no writes, no learning
        sequence = self.dispatch()
        self.assertEqual(self.host.animation_lock, 0.5)
        self.respond(sequence, old_lock=0.2, new_lock=0.6)
        self.assertEqual(len(self.warnings), 1)
        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.host.animation_lock, 0.6)

        self.engine.clear_interference()
        self.dispatch()
        self.assertAlmostEqual(self.host.animation_lock, self.engine.last_predicted_lock)
        self.assertNotEqual(self.host.animation_lock, 0.5)

    def test_interference_band_is_configurable(self):
        self.engine = self.make_engine(interference_detection=False)
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5123)
        self.assertFalse(self.engine.interference_active)

        self.engine = self.make_engine(interference_band_ms=(3.0, 9.5))
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5123)
        self.assertFalse(self.engine.interference_active)

    def test_dry_run_learns_without_writing(self):
        self.engine = self.make_engine(dry_run=True)
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.6)

        # No pending entry: the game's own 0.5 default is the applied lock
        self.assertAlmostEqual(self.engine.last_rtt, 0.3)
        self.assertEqual(self.engine.last_correction, 0.0)
        self.assertEqual(self.engine.estimator.sample_count, 1)
        self.assertEqual(len(self.db), 1)
        self.assertEqual(self.host.animation_lock, 0.6)
        self.assertEqual(self.engine.total_actions_reduced, 0)

    def test_older_response_keeps_newer_pending(self):
        first = self.dispatch()
        second = self.dispatch()
        self.assertEqual(set(self.engine.pending), {first, second})

        self.respond(first, old_lock=0.2, new_lock=0.5)
        self.assertEqual(set(self.engine.pending), {second})
        self.assertEqual(self.engine.arbiter.owner, LockOwner.GENERAL)

        self.respond(second, old_lock=0.2, new_lock=0.5)
        self.assertEqual(self.engine.pending, {})

    def test_newest_response_clears_stale_entries(self):
        self.dispatch()
        second = self.dispatch()
        self.respond(second, old_lock=0.2, new_lock=0.5)
        self.assertEqual(self.engine.pending, {})
        self.assertEqual(self.engine.arbiter.owner, LockOwner.UNOWNED)

    def test_unknown_sequence_uses_idle_default(self):
        self.respond(99, old_lock=0.1, new_lock=0.6)
        self.assertAlmostEqual(self.engine.last_rtt, 0.4)

    def test_burst_weight_dampens_estimator(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.engine.on_frame(0.05)

        sequence = self.dispatch()
        for _ in range(3):
            self.engine.on_packet_sent()
        self.assertEqual(self.engine.packets.get_rtt_weight(), 0.1)

        self.respond(sequence, old_lock=0.14, new_lock=0.5)
        # err = 0.40 - 0.34, alpha * weight = 0.0125
        self.assertAlmostEqual(self.engine.estimator.smoothed_rtt, 0.34 + 0.0125 * 0.06)

    def test_sanity_ceiling_blocks_write(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=12.0)
        self.assertGreater(self.engine.last_adjusted_lock, 10.0)
        self.assertEqual(self.host.animation_lock, 12.0)
        self.assertEqual(self.engine.total_actions_reduced, 0)

    def test_adjusted_lock_never_negative(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.05, new_lock=0.0)
        self.assertGreaterEqual(self.engine.last_adjusted_lock, 0.0)
        self.assertGreaterEqual(self.host.animation_lock, 0.0)

    def test_unexpected_error_is_logged_and_ignored(self):
        sequence = self.dispatch()
        self.host.get_current_sequence = MagicMock(side_effect=RuntimeError("boom"))
        with self.assertLogs("lockcomp", level="ERROR"):
            self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.engine.floor.sample_count, 0)
        self.assertIn(sequence, self.engine.pending)

    def test_failed_host_write_leaves_state_untouched(self):
        sequence = self.dispatch()
        self.host.set_animation_lock = MagicMock(side_effect=RuntimeError("write refused"))
        with self.assertLogs("lockcomp", level="ERROR"):
            self.respond(sequence, old_lock=0.2, new_lock=0.5)

        self.assertEqual(len(self.db), 0)
        self.assertEqual(self.engine.floor.sample_count, 0)
        self.assertEqual(self.engine.estimator.sample_count, 0)
        self.assertFalse(self.engine.estimator.is_initialized)
        self.assertIn(sequence, self.engine.pending)
        self.assertEqual(self.engine.arbiter.owner, LockOwner.GENERAL)
        self.assertEqual(self.engine.total_actions_reduced, 0)


class TestCastFallback(EngineTestCase):
    def test_cast_response_adds_remaining_lock(self):
        self.engine.on_cast_begin()
        self.respond(self.host.sequence, old_lock=0.05, new_lock=0.1)
        self.assertAlmostEqual(self.host.animation_lock, 0.15)
        self.assertEqual(len(self.db), 0)

        # Next response goes through the normal pipeline again
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.assertEqual(len(self.db), 1)

    def test_ignored_response_ends_cast(self):
        self.engine.on_cast_begin()
        self.engine.on_action_effect_ignored(ActionEffectEvent(0, 3577, True, 0.05, 0.1, 0.1))
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.assertEqual(len(self.db), 1)

    def test_interrupted_cast_uses_normal_pipeline(self):
        self.engine.on_cast_begin()
        self.engine.on_cast_interrupt()
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.assertEqual(len(self.db), 1)


class TestConfiguration(EngineTestCase):
    def test_apply_config_updates_leaves(self):
        self.engine.apply_config(ConfigSnapshot(alpha=0.3, beta=0.4, k=3.0, floor_scaling=0.6))
        self.assertEqual(self.engine.estimator.alpha, 0.3)
        self.assertEqual(self.engine.estimator.beta, 0.4)
        self.assertEqual(self.engine.estimator.k, 3.0)
        self.assertEqual(self.engine.floor.scaling_factor, 0.6)

    def test_reset_estimators(self):
        sequence = self.dispatch()
        self.respond(sequence, old_lock=0.2, new_lock=0.5)
        self.engine.reset_estimators()
        self.assertEqual(self.engine.estimator.sample_count, 0)
        self.assertEqual(self.engine.floor.sample_count, 0)

if __name__ == '__main__':
    unittest.main()

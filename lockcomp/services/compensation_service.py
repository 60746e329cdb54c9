import dataclasses
from typing import Any, Dict, List, Optional

from lockcomp.services.base_service import ICompensationService, IConfigService, ILockStore
from lockcomp.core.cast_predictor import CastLockPredictor
from lockcomp.core.correction_engine import CorrectionEngine
from lockcomp.core.diagnostics import collect_diagnostics
from lockcomp.core.encounter_stats import EncounterStats
from lockcomp.core.events import (
    bus, EventBus, ActionUsedEvent, ActionEffectEvent, CastBeginEvent, CastInterruptEvent,
    PacketSentEvent, FrameTickEvent,
)
from lockcomp.core.host import IGameHost
from lockcomp.core.lock_database import LockDatabase
from lockcomp.config import DEFAULT_CONFIG
from lockcomp.logger import logger

TUNING_KEYS = ("jk_alpha", "jk_beta", "jk_k", "dynamic_floor_scaling")

USAGE = ("Usage: /lockcomp <option>"
         "\n  on / off / toggle - Enable or disable animation lock compensation."
         "\n  dry - Toggle dry run (calculations only, no lock overrides)."
         "\n  diag - Toggle diagnostics and print the current report."
         "\n  reset - Reset RTT tuning to defaults and clear the estimators.")


class CompensationService(ICompensationService):
    """
    Bridges host callbacks (via the event bus) to the correction engine,
    the cast predictor and the encounter statistics, and owns the deferred
    persistence of learned locks and lifetime counters.
    """

    def __init__(self, host: IGameHost, config: IConfigService, store: ILockStore,
                 event_bus: Optional[EventBus] = None):
        self.host = host
        self.config = config
        self.store = store
        self.bus = event_bus or bus

        self.lock_db = LockDatabase()
        self.engine: Optional[CorrectionEngine] = None
        self.cast_predictor: Optional[CastLockPredictor] = None
        self.stats: Optional[EncounterStats] = None
        self.running = False
        # Snapshot fields forced for this session only, never saved
        self._overrides: Dict[str, Any] = {}
        self._persist_attempted = False

        self._subscriptions = [
            (ActionUsedEvent, self._handle_action_used),
            (ActionEffectEvent, self._handle_action_effect),
            (CastBeginEvent, self._handle_cast_begin),
            (CastInterruptEvent, self._handle_cast_interrupt),
            (PacketSentEvent, self._handle_packet_sent),
            (FrameTickEvent, self._handle_frame_tick),
        ]

    def initialize(self) -> bool:
        logger.info("CompensationService: Initializing...")

        self.store.load_into(self.lock_db)

        snapshot = self.config.snapshot()
        self.engine = CorrectionEngine(
            self.host,
            self.lock_db,
            config=snapshot,
            event_bus=self.bus,
            total_actions_reduced=int(self.config.get("total_actions_reduced", 0)),
            total_lock_reduction=float(self.config.get("total_lock_reduction", 0.0)),
        )
        self.cast_predictor = CastLockPredictor(self.host, self.engine)
        self.engine.attach_cast_predictor(self.cast_predictor)
        self.stats = EncounterStats(self.host, last_action_id=lambda: self.engine.last_action_id)

        # Subscribe to config changes
        self.config.add_observer(self.on_config_changed)
        self.on_config_changed()

        for event_type, handler in self._subscriptions:
            self.bus.subscribe(event_type, handler)

        self.running = True
        return True

    def shutdown(self) -> None:
        if not self.running:
            return
        logger.info("CompensationService: Shutting down...")
        for event_type, handler in self._subscriptions:
            self.bus.unsubscribe(event_type, handler)
        self.persist()
        self.running = False

    def on_config_changed(self) -> None:
        snapshot = self.config.snapshot()
        if self._overrides:
            snapshot = dataclasses.replace(snapshot, **self._overrides)
        self.engine.apply_config(snapshot)
        self.stats.log_details = snapshot.enable_encounter_stats_logging

    # --- Event handlers ---

    def _handle_action_used(self, event: ActionUsedEvent) -> None:
        if self.engine.config.enable_anim_lock_comp:
            self.engine.on_action_used(event)

    def _handle_action_effect(self, event: ActionEffectEvent) -> None:
        if self.engine.config.enable_anim_lock_comp:
            self.engine.on_action_effect(event)
        else:
            self.engine.on_action_effect_ignored(event)

    def _handle_cast_begin(self, event: CastBeginEvent) -> None:
        self.engine.on_cast_begin(event)
        self.cast_predictor.on_cast_begin(event)

    def _handle_cast_interrupt(self, event: CastInterruptEvent) -> None:
        self.engine.on_cast_interrupt(event)
        self.cast_predictor.on_cast_interrupt(event)

    def _handle_packet_sent(self, event: PacketSentEvent) -> None:
        self.engine.on_packet_sent(event)

    def _handle_frame_tick(self, event: FrameTickEvent) -> None:
        # Packet window ages every frame, even while compensation is off
        self.engine.on_frame(event.delta_time)
        self.cast_predictor.on_frame(event.delta_time)

        if self.engine.config.enable_encounter_stats:
            self.stats.update(event.delta_time)

        # Disk writes only during loading screens, one attempt per loading screen
        if not self.host.between_areas():
            self._persist_attempted = False
        elif self.engine.save_pending and not self._persist_attempted:
            self._persist_attempted = True
            self.persist()

    # --- Persistence ---

    def persist(self) -> bool:
        saved = self.store.save_from(self.lock_db)
        self.config.update(
            total_actions_reduced=self.engine.total_actions_reduced,
            total_lock_reduction=self.engine.total_lock_reduction,
        )
        if saved:
            self.engine.save_pending = False
        return saved

    def set_session_overrides(self, **overrides: Any) -> None:
        """Forces snapshot fields (e.g. dry_run=True) until shutdown without touching the config file."""
        self._overrides.update(overrides)
        self.on_config_changed()

    # --- Commands ---

    def handle_command(self, argument: str) -> str:
        argument = (argument or "").strip().lower()
        enabled = bool(self.config.get("enable_anim_lock_comp", True))

        if argument == "on" or (argument in ("toggle", "t") and not enabled):
            self.config.set("enable_anim_lock_comp", True)
            return "Enabled animation lock compensation!"

        if argument == "off" or (argument in ("toggle", "t") and enabled):
            self.config.set("enable_anim_lock_comp", False)
            return "Disabled animation lock compensation!"

        if argument in ("dry", "d"):
            dry_run = not self.engine.config.dry_run
            self._overrides.pop("dry_run", None)
            self.engine.clear_interference()
            self.config.set("enable_dry_run", dry_run)
            return f"Dry run is now {'enabled' if dry_run else 'disabled'}."

        if argument == "diag":
            enabled_diag = not bool(self.config.get("enable_diagnostics", False))
            self.config.set("enable_diagnostics", enabled_diag)
            if enabled_diag:
                for line in self.get_diagnostics_lines():
                    logger.info(f"Diagnostics: {line}")
            return f"Diagnostics are now {'enabled' if enabled_diag else 'disabled'}."

        if argument == "reset":
            self.config.update(**{key: DEFAULT_CONFIG[key] for key in TUNING_KEYS})
            self.engine.reset_estimators()
            return "RTT tuning reset to defaults."

        return USAGE

    def get_diagnostics_lines(self) -> List[str]:
        return collect_diagnostics(self.engine, self.cast_predictor).format_lines()

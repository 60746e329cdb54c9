import argparse
import json
import sys
from typing import Any, Dict, Iterable, List, Optional

from lockcomp.config import CONFIG_FILE
from lockcomp.core.events import (
    bus, EventBus, ActionUsedEvent, ActionEffectEvent, CastBeginEvent, CastInterruptEvent,
    PacketSentEvent, FrameTickEvent, UserWarningEvent,
)
from lockcomp.core.host import IGameHost, SimulatedHost
from lockcomp.logger import logger
from lockcomp.service_container import ServiceContainer
from lockcomp.services.base_service import ICompensationService, IConfigService, ILockStore
from lockcomp.services.compensation_service import CompensationService
from lockcomp.services.config_service import ConfigService
from lockcomp.services.lock_store import LockStore


class Launcher:
    def __init__(self, host: IGameHost, config_path: str = CONFIG_FILE,
                 db_path: str = "data/locks.db", event_bus: Optional[EventBus] = None):
        self.host = host
        self.config_path = config_path
        self.db_path = db_path
        self.bus = event_bus or bus
        self.container = ServiceContainer()
        self.warnings: List[str] = []

    def setup_services(self) -> bool:
        self.container.clear()

        config = ConfigService(self.config_path)
        store = LockStore(self.db_path)
        compensation = CompensationService(self.host, config, store, event_bus=self.bus)

        # Registration order is initialization order
        self.container.register(IConfigService, config)
        self.container.register(ILockStore, store)
        self.container.register(ICompensationService, compensation)

        self.bus.subscribe(UserWarningEvent, self._on_user_warning)
        return self.container.initialize_all()

    def _on_user_warning(self, event: UserWarningEvent) -> None:
        self.warnings.append(event.message)

    def shutdown(self) -> None:
        self.bus.unsubscribe(UserWarningEvent, self._on_user_warning)
        self.container.shutdown_all()


class TraceReplayer:
    """
    Drives a SimulatedHost from recorded host events, one JSON object per line:

        {"type": "use", "action_id": 7, "action_type": 1}
        {"type": "effect", "action_id": 7, "new_lock": 0.6}
        {"type": "cast_begin", "cast_time": 2.5} / {"type": "cast_end"} / {"type": "cast_interrupt"}
        {"type": "packet"}
        {"type": "tick", "dt": 0.016}
        {"type": "combat", "value": true} / {"type": "loading", "value": false}
    """

    def __init__(self, host: SimulatedHost, event_bus: Optional[EventBus] = None):
        self.host = host
        self.bus = event_bus or bus
        self.processed = 0

    def apply(self, record: Dict[str, Any]) -> None:
        kind = record.get("type")
        host = self.host

        if kind == "use":
            sequence = host.use_action()
            self.bus.publish(ActionUsedEvent(int(record.get("action_type", 1)), int(record["action_id"]), sequence))
        elif kind == "effect":
            new_lock = float(record["new_lock"])
            sequence = int(record.get("sequence", host.get_current_sequence()))
            old_lock = host.receive_lock(new_lock)
            self.bus.publish(ActionEffectEvent(
                sequence=sequence,
                action_id=int(record["action_id"]),
                is_local_actor=bool(record.get("local", True)),
                old_lock=old_lock,
                new_lock=new_lock,
                header_lock=record.get("header_lock", new_lock),
            ))
        elif kind == "cast_begin":
            host.begin_cast(float(record.get("cast_time", 2.5)))
            self.bus.publish(CastBeginEvent())
        elif kind == "cast_end":
            host.casting = False
        elif kind == "cast_interrupt":
            host.interrupt_cast()
            self.bus.publish(CastInterruptEvent())
        elif kind == "packet":
            self.bus.publish(PacketSentEvent(record.get("payload")))
        elif kind == "tick":
            delta = float(record.get("dt", 1 / 60))
            host.advance(delta)
            self.bus.publish(FrameTickEvent(delta))
        elif kind == "combat":
            host.combat = bool(record.get("value", True))
        elif kind == "loading":
            host.loading = bool(record.get("value", True))
        else:
            logger.warning(f"TraceReplayer: Unknown record type {kind!r}, skipped")
            return
        self.processed += 1

    def replay(self, lines: Iterable[str]) -> int:
        for number, line in enumerate(lines, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"TraceReplayer: Line {number} is not valid JSON: {e}")
                continue
            self.apply(record)
        return self.processed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay a host event trace through the lock compensation engine")
    parser.add_argument("trace", help="JSON-lines trace file")
    parser.add_argument("--config", default=CONFIG_FILE, help="Config JSON path")
    parser.add_argument("--db", default="data/locks.db", help="Lock database path")
    parser.add_argument("--pvp", action="store_true", help="Replay in the PvP context")
    parser.add_argument("--dry-run", action="store_true", help="Compute only, never write the lock")
    args = parser.parse_args(argv)

    host = SimulatedHost(pvp=args.pvp)
    launcher = Launcher(host, config_path=args.config, db_path=args.db)
    if not launcher.setup_services():
        print("Failed to start services", file=sys.stderr)
        return 1

    compensation = launcher.container.resolve(ICompensationService)
    if args.dry_run:
        compensation.set_session_overrides(dry_run=True)

    try:
        with open(args.trace, "r", encoding="utf-8") as f:
            count = TraceReplayer(host, launcher.bus).replay(f)
    except OSError as e:
        print(f"Cannot read trace: {e}", file=sys.stderr)
        launcher.shutdown()
        return 1

    print(f"Replayed {count} events")
    for line in compensation.get_diagnostics_lines():
        print(line)
    for warning in launcher.warnings:
        print(f"WARNING: {warning}")

    launcher.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())

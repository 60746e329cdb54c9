from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from lockcomp.core.dynamic_floor import DynamicFloor
from lockcomp.logger import f2ms


@dataclass(frozen=True)
class DiagnosticsReport:
    """Point-in-time copy of the engine's observable state."""
    smoothed_rtt: float
    rtt_variance: float
    predicted_buffer: float
    last_rtt: float
    rtt_samples: int
    floor: float
    floor_samples: int
    min_rtt: float
    last_action_id: int
    last_predicted_lock: float
    last_correction: float
    last_variance_buffer: float
    last_adjusted_lock: float
    packets_in_window: int
    rtt_weight: float
    last_predicted_cast_lock: float
    last_actual_cast_lock: float
    read_only: bool
    interference_active: bool
    pending_predictions: int
    lock_owner: str
    entry_mean_lock: Optional[float]
    entry_confidence: Optional[float]
    entry_samples: Optional[int]
    alpha: float
    beta: float
    k: float
    floor_scaling: float
    total_actions_reduced: int
    total_lock_reduction: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def format_lines(self) -> List[str]:
        lines = [
            "RTT Estimator (Jacobson/Karels)",
            f"  Smoothed RTT:     {f2ms(max(self.smoothed_rtt, 0.0))} ms",
            f"  RTT Variance:     {f2ms(self.rtt_variance)} ms",
            f"  Predicted Buffer: {f2ms(self.predicted_buffer)} ms",
            f"  Last RTT:         {f2ms(self.last_rtt)} ms",
            f"  RTT Samples:      {self.rtt_samples}",
            "Dynamic Floor",
            f"  Current Floor:    {f2ms(self.floor)} ms",
            f"  Min RTT:          {f2ms(self.min_rtt)} ms",
            f"  Floor Samples:    {self.floor_samples}",
            f"  Legacy Floor:     {f2ms(DynamicFloor.DEFAULT_FLOOR)} ms",
            "Last Action",
            f"  Action ID:        {self.last_action_id}",
            f"  Predicted Lock:   {f2ms(self.last_predicted_lock)} ms",
            f"  Correction:       {f2ms(self.last_correction)} ms",
            f"  Variance Buffer:  {f2ms(self.last_variance_buffer)} ms",
            f"  Adjusted Lock:    {f2ms(self.last_adjusted_lock)} ms",
            f"  Packets (50ms):   {self.packets_in_window} (weight {self.rtt_weight:.2f})",
            "Cast Prediction",
            f"  Predicted:        {f2ms(self.last_predicted_cast_lock)} ms",
            f"  Actual:           {f2ms(self.last_actual_cast_lock)} ms",
        ]
        if self.entry_mean_lock is not None:
            lines += [
                "Lock Database",
                f"  Mean Lock:        {f2ms(self.entry_mean_lock)} ms",
                f"  Confidence:       {self.entry_confidence:.0%} ({self.entry_samples} samples)",
            ]
        lines += [
            "State",
            f"  Mode:             {'read-only' if self.read_only else 'active'}"
            f"{' (external modifier detected)' if self.interference_active else ''}",
            f"  Lock Owner:       {self.lock_owner}",
            f"  Pending:          {self.pending_predictions}",
            "Parameters",
            f"  Alpha:            {self.alpha:.3f}",
            f"  Beta:             {self.beta:.3f}",
            f"  K:                {self.k:.1f}",
            f"  Floor Scale:      {self.floor_scaling:.2f}",
            f"Reduced {self.total_lock_reduction:.2f}s of lock over {self.total_actions_reduced} actions",
        ]
        return lines


def collect_diagnostics(engine, cast_predictor=None) -> DiagnosticsReport:
    """Reads engine (and predictor) state without side effects."""
    estimator = engine.estimator
    floor = engine.floor
    entry = None
    if engine.last_action_id:
        entry = engine.lock_db.get_entry(engine.last_action_id, engine.get_context())

    return DiagnosticsReport(
        smoothed_rtt=estimator.smoothed_rtt,
        rtt_variance=estimator.rtt_variance,
        predicted_buffer=estimator.predicted_buffer,
        last_rtt=engine.last_rtt,
        rtt_samples=estimator.sample_count,
        floor=floor.floor,
        floor_samples=floor.sample_count,
        min_rtt=floor.min_rtt,
        last_action_id=engine.last_action_id,
        last_predicted_lock=engine.last_predicted_lock,
        last_correction=engine.last_correction,
        last_variance_buffer=engine.last_variance_buffer,
        last_adjusted_lock=engine.last_adjusted_lock,
        packets_in_window=engine.packets.total_packets_sent,
        rtt_weight=engine.packets.get_rtt_weight(),
        last_predicted_cast_lock=cast_predictor.last_predicted_cast_lock if cast_predictor else 0.0,
        last_actual_cast_lock=cast_predictor.last_actual_cast_lock if cast_predictor else 0.0,
        read_only=engine.is_read_only,
        interference_active=engine.interference_active,
        pending_predictions=len(engine.pending),
        lock_owner=engine.arbiter.owner.value,
        entry_mean_lock=entry.mean_lock if entry else None,
        entry_confidence=entry.confidence if entry else None,
        entry_samples=entry.sample_count if entry else None,
        alpha=estimator.alpha,
        beta=estimator.beta,
        k=estimator.k,
        floor_scaling=floor.scaling_factor,
        total_actions_reduced=engine.total_actions_reduced,
        total_lock_reduction=engine.total_lock_reduction,
    )

import math


class RTTEstimator:
    """
    Jacobson/Karels round-trip estimator (RFC 6298).

    Tracks smoothed RTT and RTT variance separately:
        SRTT   += alpha * w * (sample - SRTT)
        RTTVAR  = (1 - beta * w) * RTTVAR + beta * w * |sample - SRTT|
    The weight w (0..1] dampens samples taken during packet bursts.
    """

    UNINITIALIZED = -1.0
    MIN_SRTT = 0.001

    def __init__(self, alpha: float = 0.125, beta: float = 0.25, k: float = 2.0):
        self.alpha = alpha
        self.beta = beta
        self.k = k

        self.smoothed_rtt = self.UNINITIALIZED
        self.rtt_variance = 0.0
        self.sample_count = 0

    @property
    def is_initialized(self) -> bool:
        return self.smoothed_rtt > 0

    @property
    def predicted_buffer(self) -> float:
        """SRTT + K * RTTVAR, or 0 before the first sample."""
        if not self.is_initialized:
            return 0.0
        return max(self.smoothed_rtt + self.k * self.rtt_variance, self.MIN_SRTT)

    @property
    def variance_buffer(self) -> float:
        """K * RTTVAR, the jitter allowance added on top of a correction."""
        if not self.is_initialized:
            return 0.0
        return self.k * self.rtt_variance

    def add_sample(self, sample: float, weight: float = 1.0) -> None:
        if sample <= 0 or not math.isfinite(sample):
            return

        self.sample_count += 1

        if not self.is_initialized:
            # Bootstrap per RFC 6298, no smoothing on the first measurement
            self.smoothed_rtt = sample
            self.rtt_variance = sample / 2.0
            return

        effective_alpha = self.alpha * weight
        effective_beta = self.beta * weight

        err = sample - self.smoothed_rtt
        self.smoothed_rtt += effective_alpha * err
        self.rtt_variance = (1 - effective_beta) * self.rtt_variance + effective_beta * abs(err)

        if self.smoothed_rtt < self.MIN_SRTT:
            self.smoothed_rtt = self.MIN_SRTT
        if self.rtt_variance < 0:
            self.rtt_variance = 0.0

    def reset(self) -> None:
        self.smoothed_rtt = self.UNINITIALIZED
        self.rtt_variance = 0.0
        self.sample_count = 0

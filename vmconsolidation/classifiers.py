# classifiers.py
import numpy as np

from .config import UTILIZATION_THRESHOLD, SAFETY_PARAMETER, MIN_HISTORY_LENGTH


class UtilizationClassifier:
    """
    Decides whether a host is over-utilized.

    Implementations must only read the host (current VMs and utilization history),
    so the optimizer can ask repeatedly within one pass, including during trial
    placements, and always get a consistent answer.
    """

    def threshold(self, host):
        raise NotImplementedError

    def is_over_utilized(self, host):
        return host.utilization_of_cpu() > self.threshold(host)


class StaticThreshold(UtilizationClassifier):
    def __init__(self, utilization_threshold=UTILIZATION_THRESHOLD):
        self.utilization_threshold = utilization_threshold

    def threshold(self, host):
        return self.utilization_threshold


class _HistoryBasedThreshold(UtilizationClassifier):
    """Upper threshold of 1 - s * dispersion(history), or the fallback while history is short."""

    def __init__(self, safety_parameter=SAFETY_PARAMETER, fallback=None,
                 min_history_length=MIN_HISTORY_LENGTH):
        self.safety_parameter = safety_parameter
        self.fallback = fallback or StaticThreshold()
        self.min_history_length = min_history_length

    def dispersion(self, data):
        raise NotImplementedError

    def threshold(self, host):
        history = np.asarray(host.utilization_history, dtype=float)
        if len(history) < self.min_history_length:
            return self.fallback.threshold(host)
        return 1.0 - self.safety_parameter * self.dispersion(history)


class MedianAbsoluteDeviation(_HistoryBasedThreshold):
    def dispersion(self, data):
        return float(np.median(np.abs(data - np.median(data))))


class InterQuartileRange(_HistoryBasedThreshold):
    def dispersion(self, data):
        q1, q3 = np.percentile(data, [25, 75])
        return float(q3 - q1)


def get_classifier(name, parameter=None):
    """
    Build a classifier by its short name.

    :param name: "thr" (static threshold), "mad" or "iqr"
    :param parameter: utilization threshold for "thr", safety parameter otherwise
    """
    if name == "thr":
        return StaticThreshold(UTILIZATION_THRESHOLD if parameter is None else parameter)
    elif name == "mad":
        return MedianAbsoluteDeviation(SAFETY_PARAMETER if parameter is None else parameter)
    elif name == "iqr":
        return InterQuartileRange(SAFETY_PARAMETER if parameter is None else parameter)
    else:
        raise ValueError(f"Unknown utilization classifier: {name}")

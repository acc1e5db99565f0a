# history.py
from collections import deque

import pandas as pd

from .config import HISTORY_RETENTION


class HistoryRecorder:
    def __init__(self, retention=HISTORY_RETENTION):
        """
        Append-only diagnostics kept by the migration optimizer.

        Per host: parallel time / CPU utilization / metric sequences. The metric is
        whatever the utilization classifier decides on (upper threshold, predicted
        utilization, ...). Per optimization pass: the time spent in host selection,
        VM selection, VM reallocation and in total.

        :param retention: Maximum number of entries kept in every sequence; the oldest
                          entries are dropped first.
        """
        self.retention = retention
        self._time_history = {}
        self._utilization_history = {}
        self._metric_history = {}

        self._execution_time_host_selection = deque(maxlen=retention)
        self._execution_time_vm_selection = deque(maxlen=retention)
        self._execution_time_vm_reallocation = deque(maxlen=retention)
        self._execution_time_total = deque(maxlen=retention)

    def add_history_entry(self, host, current_time, metric):
        """
        Record one sample for a host, at most once per distinct timestamp.
        Returns True if a sample was appended.
        """
        host_id = host.host_id
        times = self._time_history.setdefault(host_id, deque(maxlen=self.retention))
        utilizations = self._utilization_history.setdefault(host_id, deque(maxlen=self.retention))
        metrics = self._metric_history.setdefault(host_id, deque(maxlen=self.retention))

        if times and times[-1] == current_time:
            return False
        times.append(current_time)
        utilizations.append(host.utilization_of_cpu())
        metrics.append(metric)
        return True

    def add_execution_times(self, host_selection, vm_selection, vm_reallocation, total):
        self._execution_time_host_selection.append(host_selection)
        self._execution_time_vm_selection.append(vm_selection)
        self._execution_time_vm_reallocation.append(vm_reallocation)
        self._execution_time_total.append(total)

    def host_ids(self):
        return list(self._time_history)

    def time_history(self, host_id):
        return tuple(self._time_history.get(host_id, ()))

    def utilization_history(self, host_id):
        return tuple(self._utilization_history.get(host_id, ()))

    def metric_history(self, host_id):
        return tuple(self._metric_history.get(host_id, ()))

    @property
    def execution_time_host_selection(self):
        return tuple(self._execution_time_host_selection)

    @property
    def execution_time_vm_selection(self):
        return tuple(self._execution_time_vm_selection)

    @property
    def execution_time_vm_reallocation(self):
        return tuple(self._execution_time_vm_reallocation)

    @property
    def execution_time_total(self):
        return tuple(self._execution_time_total)

    def to_dataframe(self):
        """Host samples as a long-format table: host_id, time, utilization, metric."""
        rows = []
        for host_id in self._time_history:
            for t, u, m in zip(self._time_history[host_id],
                               self._utilization_history[host_id],
                               self._metric_history[host_id]):
                rows.append({"host_id": host_id, "time": t, "utilization": u, "metric": m})
        return pd.DataFrame(rows, columns=["host_id", "time", "utilization", "metric"])

    def execution_times_dataframe(self):
        return pd.DataFrame({
            "host_selection": list(self._execution_time_host_selection),
            "vm_selection": list(self._execution_time_vm_selection),
            "vm_reallocation": list(self._execution_time_vm_reallocation),
            "total": list(self._execution_time_total),
        })

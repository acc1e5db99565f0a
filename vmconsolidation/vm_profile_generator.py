import os
import random

import numpy as np


def load_trace_data(trace_dir, num_traces, time_steps=288):
    """
    Load trace data from the PlanetLab directory.
    Each file holds one CPU utilization percentage per line, sampled every 5 minutes.
    """
    trace_files = sorted(f for f in os.listdir(trace_dir) if os.path.isfile(os.path.join(trace_dir, f)))
    if len(trace_files) < num_traces:
        raise ValueError(f"Not enough trace files in {trace_dir}: need {num_traces}, found {len(trace_files)}.")
    selected_traces = random.sample(trace_files, num_traces)
    trace_data = {}

    for i, filename in enumerate(selected_traces):
        path = os.path.join(trace_dir, filename)
        with open(path, 'r') as f:
            values = [float(line.strip()) for line in f if line.strip().isdigit()]
        values = values[:time_steps]
        if len(values) < time_steps:
            raise ValueError(f"Trace file {filename} has fewer than {time_steps} entries.")
        trace_data[i] = [min(max(v / 100.0, 0.0), 1.0) for v in values]

    return trace_data


def generate_synthetic_trace_data(num_traces, time_steps=288, rng=None):
    """
    PlanetLab-like utilization traces: a per-VM base load with a daily swing and
    autocorrelated noise, clipped to [0, 1].
    """
    rng = rng or np.random.default_rng()
    t = np.arange(time_steps)
    trace_data = {}
    for i in range(num_traces):
        base = rng.uniform(0.05, 0.6)
        swing = rng.uniform(0.0, 0.3) * np.sin(2 * np.pi * (t / time_steps) + rng.uniform(0, 2 * np.pi))
        noise = np.zeros(time_steps)
        for step in range(1, time_steps):
            noise[step] = 0.8 * noise[step - 1] + rng.normal(0.0, 0.05)
        trace_data[i] = np.clip(base + swing + noise, 0.0, 1.0).tolist()
    return trace_data


def generate_initial_vm_profiles(num_vms, trace_dir=None, time_steps=288, rng=None):
    """
    Generate a group of VMs that all exist at time = 0 and live for the whole run.

    :param num_vms: Total number of VMs to generate
    :param trace_dir: Directory containing PlanetLab trace files; synthetic traces if None
    :param time_steps: Number of simulation steps
    :param rng: numpy Generator used for synthetic traces
    :return: List of VM profile dicts
    """
    if trace_dir:
        trace_data = load_trace_data(trace_dir, num_traces=num_vms, time_steps=time_steps)
    else:
        trace_data = generate_synthetic_trace_data(num_vms, time_steps=time_steps, rng=rng)

    return [
        {
            "vm_id": vm_index,
            "arrival_time": 0,
            "lifetime": time_steps,
            "cpu_utilization": trace_data[vm_index][:time_steps],
        }
        for vm_index in range(num_vms)
    ]


def generate_dynamic_vm_profiles(mean_arrivals_per_step, mean_lifetime_steps,
                                 initial_vm_id=0, time_steps=288, trace_dir=None, rng=None):
    """
    Generate VM profiles for VMs arriving during the run.

    Arrivals per step are Poisson distributed, lifetimes exponential (at least one step,
    never beyond the end of the run).

    :param mean_arrivals_per_step: Mean number of VMs arriving per step
    :param mean_lifetime_steps: Mean VM lifetime in steps
    :param initial_vm_id: Starting vm_id for dynamic VMs (to avoid id overlap)
    :param time_steps: Total number of simulation steps
    :param trace_dir: Directory for trace data; synthetic traces if None
    :param rng: numpy Generator
    :return: List of VM profile dicts
    """
    rng = rng or np.random.default_rng()
    arrivals = rng.poisson(mean_arrivals_per_step, size=time_steps)
    total = int(arrivals.sum())
    if total == 0:
        return []

    if trace_dir:
        trace_data = load_trace_data(trace_dir, num_traces=total, time_steps=time_steps)
    else:
        trace_data = generate_synthetic_trace_data(total, time_steps=time_steps, rng=rng)

    vm_profiles = []
    vm_id = initial_vm_id
    trace_index = 0
    for t, num_arrivals in enumerate(arrivals):
        for _ in range(int(num_arrivals)):
            lifetime = max(1, int(np.ceil(rng.exponential(mean_lifetime_steps))))
            vm_profiles.append({
                "vm_id": vm_id,
                "arrival_time": t,
                "lifetime": min(lifetime, time_steps - t),
                "cpu_utilization": trace_data[trace_index][:time_steps],
            })
            vm_id += 1
            trace_index += 1

    return vm_profiles

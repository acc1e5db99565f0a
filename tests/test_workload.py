import random

import numpy as np
import pytest

from vmconsolidation.helper import VM_MIPS, create_host_list, create_vm_list, specpower_function
from vmconsolidation.vm_profile_generator import (
    generate_dynamic_vm_profiles, generate_initial_vm_profiles, generate_synthetic_trace_data,
    load_trace_data,
)


def test_host_types_alternate():
    hosts = create_host_list(4)
    assert [h.total_mips for h in hosts] == [3720, 5320, 3720, 5320]
    assert hosts[0].power_at(0.0) == pytest.approx(86)
    assert hosts[1].max_power() == pytest.approx(135)


def test_specpower_curve_interpolates():
    power = specpower_function([86, 89.4, 92.6, 96, 99.5, 102, 106, 108, 112, 114, 117])
    assert power(0.05) == pytest.approx(87.7)
    with pytest.raises(ValueError):
        power(1.2)


def test_linear_power_model():
    host = create_host_list(1, power_model="linear")[0]
    assert host.power_at(0.5) == pytest.approx((86 + 117) / 2)
    with pytest.raises(ValueError):
        create_host_list(1, power_model="cubic")


def test_vm_list():
    vms = create_vm_list(5, start_id=10, rng=random.Random(0))
    assert [vm.vm_id for vm in vms] == [10, 11, 12, 13, 14]
    assert all(vm.mips in VM_MIPS for vm in vms)


def test_synthetic_traces_are_bounded():
    traces = generate_synthetic_trace_data(3, time_steps=50, rng=np.random.default_rng(0))
    assert len(traces) == 3
    for trace in traces.values():
        assert len(trace) == 50
        assert all(0.0 <= u <= 1.0 for u in trace)


def test_initial_profiles():
    profiles = generate_initial_vm_profiles(3, time_steps=6, rng=np.random.default_rng(0))
    assert [p["vm_id"] for p in profiles] == [0, 1, 2]
    assert all(p["arrival_time"] == 0 and p["lifetime"] == 6 for p in profiles)


def test_dynamic_profiles_stay_within_the_run():
    profiles = generate_dynamic_vm_profiles(2.0, 4, initial_vm_id=100, time_steps=10,
                                            rng=np.random.default_rng(5))
    assert [p["vm_id"] for p in profiles] == list(range(100, 100 + len(profiles)))
    for p in profiles:
        assert p["lifetime"] >= 1
        assert p["arrival_time"] + p["lifetime"] <= 10
        assert len(p["cpu_utilization"]) == 10


def test_load_trace_data(tmp_path):
    for name in ("a", "b", "c"):
        (tmp_path / name).write_text("\n".join(["10", "20", "30", "40", "50"]) + "\n")

    traces = load_trace_data(str(tmp_path), 2, time_steps=4)

    assert len(traces) == 2
    assert traces[0] == pytest.approx([0.1, 0.2, 0.3, 0.4])


def test_load_trace_data_needs_enough_files(tmp_path):
    (tmp_path / "a").write_text("10\n")
    with pytest.raises(ValueError):
        load_trace_data(str(tmp_path), 2)

import pytest

from vmconsolidation.datacenter import Host, VM


@pytest.fixture
def make_host():
    def _make_host(host_id, mips=1000, ram=16000, **kwargs):
        kwargs.setdefault("power_idle", 100.0)
        kwargs.setdefault("power_max", 200.0)
        return Host(host_id, num_cores=1, core_capacity=mips, ram_capacity=ram, **kwargs)
    return _make_host


@pytest.fixture
def make_vm():
    def _make_vm(vm_id, mips, ram=512, host=None):
        vm = VM(vm_id, mips=mips, ram=ram)
        if host is not None:
            assert host.try_attach(vm)
        return vm
    return _make_vm

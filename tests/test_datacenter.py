import pytest

from vmconsolidation.datacenter import SimulationClock


def test_utilization_follows_vm_demand(make_host, make_vm):
    host = make_host("H1")
    vm = make_vm("A", 400, host=host)
    assert host.utilization_of_cpu() == pytest.approx(0.4)

    vm.set_cpu_demand_ratio(0.5)
    assert host.utilization_of_cpu() == pytest.approx(0.2)
    assert host.available_mips() == pytest.approx(800)


def test_try_attach_refuses_vm_that_does_not_fit(make_host, make_vm):
    host = make_host("H1")
    make_vm("A", 600, host=host)
    big = make_vm("B", 500)

    assert not host.try_attach(big)
    assert big not in host.vms
    assert big.host is None


def test_try_attach_respects_ram(make_host, make_vm):
    host = make_host("H1", ram=1024)
    make_vm("A", 100, ram=800, host=host)
    assert not host.try_attach(make_vm("B", 100, ram=400))


def test_cpu_oversubscription_allows_more_than_capacity(make_host, make_vm):
    host = make_host("H1", cpu_oversub=1.5)
    for vm_id in "ABC":
        make_vm(vm_id, 400, host=host)
    assert host.utilization_of_cpu() == pytest.approx(1.2)


def test_detach_only_clears_own_back_reference(make_host, make_vm):
    h1, h2 = make_host("H1"), make_host("H2")
    vm = make_vm("A", 100, host=h1)

    h2.detach(vm)
    assert vm.host is h1

    h1.detach(vm)
    assert vm.host is None
    assert h1.vms == []


def test_linear_power_model(make_host, make_vm):
    host = make_host("H1")
    make_vm("A", 250, host=host)
    assert host.get_power() == pytest.approx(125.0)
    assert host.max_power() == pytest.approx(200.0)
    assert host.available_power() == pytest.approx(75.0)


def test_power_at_rejects_out_of_range_utilization(make_host):
    host = make_host("H1")
    with pytest.raises(ValueError):
        host.power_at(1.2)
    with pytest.raises(ValueError):
        host.power_at(-0.1)


def test_switched_off_empty_host_draws_nothing(make_host):
    host = make_host("H1")
    assert host.get_power() == pytest.approx(100.0)
    host.power_off()
    assert host.get_power() == 0.0


def test_migrating_in_vm_survives_detach_all(make_host, make_vm):
    source, target = make_host("H1"), make_host("H2")
    local = make_vm("A", 100, host=target)
    moving = make_vm("B", 200, host=source)

    assert target.add_migrating_in(moving)
    assert moving.in_migration
    assert moving.host is source

    target.detach_all()
    assert target.vms == []
    assert local.host is None
    assert moving.host is source

    target.reattach_pending_inbound()
    assert target.vms == [moving]


def test_finish_migration_in(make_host, make_vm):
    source, target = make_host("H1"), make_host("H2")
    vm = make_vm("A", 200, host=source)
    target.add_migrating_in(vm)

    source.detach(vm)
    target.finish_migration_in(vm)

    assert vm.host is target
    assert not vm.in_migration
    assert target.vms_migrating_in == []
    assert target.vms == [vm]


def test_record_utilization_is_bounded(make_host, make_vm):
    host = make_host("H1")
    make_vm("A", 500, host=host)
    for _ in range(host.utilization_history.maxlen + 5):
        host.record_utilization()
    assert len(host.utilization_history) == host.utilization_history.maxlen
    assert host.utilization_history[-1] == pytest.approx(0.5)


def test_simulation_clock():
    clock = SimulationClock()
    assert clock.now() == 0.0
    assert clock.advance(300) == 300
    assert clock.now() == 300


def test_cpu_suitability_follows_current_demand(make_host, make_vm):
    host = make_host("H1")
    vm = make_vm("A", 600, host=host)
    vm.set_cpu_demand_ratio(0.1)

    assert host.utilization_of_cpu() == pytest.approx(0.06)
    assert host.try_attach(make_vm("B", 500))

    vm.set_cpu_demand_ratio(1.0)
    assert not host.is_suitable_for_vm(make_vm("C", 100))


def test_vm_that_outgrew_its_host_can_be_put_back(make_host, make_vm):
    host = make_host("H1")
    vm = make_vm("A", 600, host=host)
    make_vm("B", 400, host=host)
    host.detach(vm)
    vm.mips = 800

    assert not host.try_attach(vm)
    assert host.try_attach(vm, check_cpu=False)
    assert host.utilization_of_cpu() == pytest.approx(1.2)

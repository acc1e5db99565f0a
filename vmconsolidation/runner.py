import argparse
import logging
import random

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .classifiers import get_classifier
from .config import LOG_LEVEL, RANDOM_SEED, STEP_DURATION_SEC, TIME_STEPS
from .helper import create_host_list, create_vm_list
from .optimizer import MigrationOptimizer
from .schedule import SchedulerVM
from .vm_profile_generator import generate_initial_vm_profiles
from .vm_selection import get_vm_selection_policy

logger = logging.getLogger(__name__)


def run_simulation(all_profiles, hosts, optimizer=None, scheduler=None,
                   step_duration_sec=STEP_DURATION_SEC, time_steps=TIME_STEPS, migrate=True):
    """
    Simulate the datacenter step by step.

    Every step: finish the migrations started during the previous step, admit arriving
    VMs, update demand and retire expired VMs, account power, then ask the optimizer
    for a migration plan and start it. Migrations take one step; while in flight the
    VM is held by both hosts.

    :return: (summary dict, per-host per-step pandas DataFrame)
    """
    optimizer = optimizer or MigrationOptimizer(hosts)
    scheduler = scheduler or SchedulerVM(hosts, classifier=optimizer.classifier)
    clock = optimizer.clock

    total_energy_joules = 0.0
    migration_count = 0
    overloaded_host_steps = 0
    active_host_steps = 0
    active_vms = []
    in_flight = []
    rows = []

    # Create all VM objects before loop
    vm_list = create_vm_list(len(all_profiles))
    for vm, profile in zip(vm_list, all_profiles):
        vm.vm_id = profile["vm_id"]
    vm_objects = {vm.vm_id: vm for vm in vm_list}
    profiles_by_id = {p["vm_id"]: p for p in all_profiles}

    logger.info("Start simulation: %d hosts, %d VM profiles, %d steps", len(hosts), len(all_profiles), time_steps)

    for t in range(time_steps):
        # Step 1: Complete migrations started in the previous step
        for vm, source, target in in_flight:
            if source is not None:
                source.detach(vm)
            target.finish_migration_in(vm)
            migration_count += 1
        in_flight = []

        # Step 2: Add VMs arriving at this time
        for profile in [p for p in all_profiles if p["arrival_time"] == t]:
            vm = vm_objects[profile["vm_id"]]
            vm.set_cpu_demand_ratio(profile["cpu_utilization"][t])
            if scheduler.schedule_vm(vm):
                active_vms.append((vm, t + profile["lifetime"]))
            else:
                logger.warning("[Step %03d] VM %s could not be scheduled.", t, vm.vm_id)

        # Step 3: Update running VMs and remove expired
        remaining_vms = []
        for vm, exp in active_vms:
            if t >= exp:
                for host in hosts:
                    host.detach(vm)
            else:
                vm.set_cpu_demand_ratio(profiles_by_id[vm.vm_id]["cpu_utilization"][t])
                remaining_vms.append((vm, exp))
        active_vms = remaining_vms

        # Step 4: Power + utilization update
        for host in hosts:
            power = host.get_power()
            total_energy_joules += power * step_duration_sec
            utilization = host.utilization_of_cpu()
            host.record_utilization()
            if host.vms:
                active_host_steps += 1
                if utilization >= 1.0:
                    overloaded_host_steps += 1
            rows.append({"step": t, "time": clock.now(), "host_id": host.host_id,
                         "utilization": min(utilization, 1.0), "power": power, "vms": len(host.vms)})

        # Step 5: Consolidate, then switch off idle hosts
        if migrate:
            plan = optimizer.optimize_allocation([vm for vm, _ in active_vms])
            in_flight = apply_migration_plan(plan, scheduler)
        for host in hosts:
            if host.active and not host.vms:
                host.power_off()

        clock.advance(step_duration_sec)

    summary = {
        "energy_kwh": total_energy_joules / 3600000,
        "migrations": migration_count,
        "boot_energy_joules": scheduler.get_total_boot_energy(),
        "overload_time_fraction": overloaded_host_steps / active_host_steps if active_host_steps else 0.0,
        "mean_active_hosts": active_host_steps / time_steps if time_steps else 0.0,
    }
    return summary, pd.DataFrame(rows)


def apply_migration_plan(plan, scheduler):
    """
    Start every migration of a plan. Returns the (vm, source, target) migrations in flight.

    A VM placed while evacuating an over-utilized host can be moved again when its new
    host is drained; only its last destination is kept.
    """
    destinations = {}
    for vm, target in plan:
        destinations[vm] = target

    in_flight = []
    for vm, target in destinations.items():
        source = vm.host
        if target is source:
            continue
        if not target.active:
            target.power_on()
            scheduler.boot_energy_total += target.boot_energy_joules
        if target.add_migrating_in(vm):
            in_flight.append((vm, source, target))
            logger.debug("Migration of VM %s: host %s -> host %s started",
                         vm.vm_id, source.host_id if source else None, target.host_id)
        else:
            logger.warning("Host %s refused VM %s, migration skipped", target.host_id, vm.vm_id)
    return in_flight


def plot_utilization(host_utilization, step_duration_sec=STEP_DURATION_SEC, show=True):
    """Plot host CPU utilization over time from the DataFrame returned by run_simulation."""
    fig, ax = plt.subplots(figsize=(14, 6))
    for host_id, trace in host_utilization.groupby("host_id"):
        ax.plot(trace["step"] * step_duration_sec / 60, trace["utilization"], label=host_id, alpha=0.8)
    ax.set_title("CPU Utilization of Hosts Over Time")
    ax.set_xlabel("Time (minutes)")
    ax.set_ylabel("CPU Utilization (0–1)")
    ax.grid(True)
    ax.legend(ncol=4, fontsize='small', loc='upper center', bbox_to_anchor=(0.5, -0.15))
    fig.tight_layout()
    if show:
        plt.show()
    return fig


def main(argv=None):
    parser = argparse.ArgumentParser(description="Simulate dynamic VM consolidation")
    parser.add_argument("--hosts", type=int, default=50)
    parser.add_argument("--vms", type=int, default=100)
    parser.add_argument("--steps", type=int, default=TIME_STEPS)
    parser.add_argument("--classifier", default="thr", choices=["thr", "mad", "iqr"])
    parser.add_argument("--parameter", type=float, default=None)
    parser.add_argument("--selection", default="mmt", choices=["mmt", "mu", "maxu", "rs"])
    parser.add_argument("--trace-dir", default=None, help="PlanetLab trace directory (synthetic traces if omitted)")
    parser.add_argument("--no-migration", action="store_true")
    parser.add_argument("--output", default=None, help="CSV file for per-host results")
    parser.add_argument("--plot", action="store_true")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED)
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL)

    random.seed(args.seed)
    rng = np.random.default_rng(args.seed)

    hosts = create_host_list(args.hosts)
    optimizer = MigrationOptimizer(
        hosts,
        classifier=get_classifier(args.classifier, args.parameter),
        vm_selection_policy=get_vm_selection_policy(args.selection),
    )
    profiles = generate_initial_vm_profiles(args.vms, trace_dir=args.trace_dir, time_steps=args.steps, rng=rng)

    summary, host_utilization = run_simulation(profiles, hosts, optimizer=optimizer,
                                               time_steps=args.steps, migrate=not args.no_migration)

    print(f"\nTotal Energy Consumption: {summary['energy_kwh']:.4f} kWh")
    print(f"Migrations: {summary['migrations']}")
    print(f"Overload time fraction: {summary['overload_time_fraction']:.2%}")
    print(f"Mean active hosts: {summary['mean_active_hosts']:.1f}")
    if optimizer.recorder.execution_time_total:
        print(f"Mean optimization time: {np.mean(optimizer.recorder.execution_time_total) * 1000:.2f} ms")

    if args.output:
        host_utilization.to_csv(args.output, index=False)
    if args.plot:
        plot_utilization(host_utilization)
    return summary


if __name__ == "__main__":
    main()

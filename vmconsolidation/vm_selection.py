# vm_selection.py
import random


def get_migratable_vms(host):
    return [vm for vm in host.vms if not vm.in_migration]


class VmSelectionPolicy:
    """Picks the next VM to evict from an over-utilized host, or None to stop."""

    def select_victim(self, host):
        raise NotImplementedError


class MinimumMigrationTime(VmSelectionPolicy):
    """The VM with the least RAM, i.e. the fastest to live-migrate."""

    def select_victim(self, host):
        candidates = get_migratable_vms(host)
        if not candidates:
            return None
        return min(candidates, key=lambda vm: vm.ram)


class MinimumUtilization(VmSelectionPolicy):
    def select_victim(self, host):
        candidates = get_migratable_vms(host)
        if not candidates:
            return None
        return min(candidates, key=lambda vm: vm.current_requested_mips())


class MaximumUtilization(VmSelectionPolicy):
    def select_victim(self, host):
        candidates = get_migratable_vms(host)
        if not candidates:
            return None
        return max(candidates, key=lambda vm: vm.current_requested_mips())


class RandomSelection(VmSelectionPolicy):
    def __init__(self, rng=None):
        self.rng = rng or random.Random()

    def select_victim(self, host):
        candidates = get_migratable_vms(host)
        if not candidates:
            return None
        return self.rng.choice(candidates)


def get_vm_selection_policy(name):
    if name == "mmt":
        return MinimumMigrationTime()
    elif name == "mu":
        return MinimumUtilization()
    elif name == "maxu":
        return MaximumUtilization()
    elif name == "rs":
        return RandomSelection()
    else:
        raise ValueError(f"Unknown VM selection policy: {name}")

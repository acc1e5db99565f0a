# helper.py

import random

import numpy as np
from scipy.interpolate import interp1d

from .datacenter import Host, VM

# ====================
# Host Configuration
# ====================
HOST_TYPES = 2
HOST_MIPS = [1860, 2660]
HOST_PES = [2, 2]
HOST_RAM = [4096, 4096]
HOST_STORAGE = 1000000
HOST_Power_Idle = [86, 93.7]
HOST_Power_Full = [117, 135]

# SPECpower measurements at 0%, 10%, ..., 100% load
# HP ProLiant ML110 G4 (Xeon 3040) and ML110 G5 (Xeon 3075)
HOST_SPECPOWER = [
    [86, 89.4, 92.6, 96, 99.5, 102, 106, 108, 112, 114, 117],
    [93.7, 97, 101, 105, 110, 116, 121, 125, 129, 133, 135],
]


def specpower_function(power_table):
    """
    Piecewise-linear power curve through evenly spaced load measurements.
    Loads outside [0, 1] raise ValueError.
    """
    curve = interp1d(np.linspace(0.0, 1.0, len(power_table)), power_table)
    return lambda utilization: float(curve(utilization))


def create_host_list(num_hosts, power_model="specpower"):
    hosts = []
    for i in range(num_hosts):
        type_id = i % HOST_TYPES

        host = Host(
            host_id=i,
            num_cores=HOST_PES[type_id],
            core_capacity=HOST_MIPS[type_id],
            ram_capacity=HOST_RAM[type_id],
            storage_capacity=HOST_STORAGE,
            power_idle=HOST_Power_Idle[type_id],
            power_max=HOST_Power_Full[type_id]
        )
        if power_model == "specpower":
            host.set_power_function(specpower_function(HOST_SPECPOWER[type_id]))
        elif power_model != "linear":
            raise ValueError(f"Unknown power model: {power_model}")
        hosts.append(host)
    return hosts


# ====================
# VM Configuration
# ====================
VM_TYPES = 4
VM_MIPS = [2500, 2000, 1000, 500]
VM_PES  = [1,    1,    1,    1]
VM_RAM  = [870,  1740, 1740, 613]
VM_SIZE = 2.5  # GB


def create_vm_list(num_vms, start_id=0, rng=None):
    rng = rng or random
    vm_list = []
    for i in range(num_vms):
        vm_type = rng.randint(0, VM_TYPES - 1)
        vm_id = start_id + i
        mips = VM_MIPS[vm_type] * VM_PES[vm_type]
        vm = VM(vm_id, mips=mips, ram=VM_RAM[vm_type], storage=VM_SIZE)
        vm_list.append(vm)
    return vm_list

# clustering.py
"""
Grouping of VMs by resource demand before bin packing.

VMs are points in (requested MIPS, RAM) space. The number of clusters is derived
from how many VMs the candidate hosts could take, centroids are seeded with a
farthest-point heuristic, then refined Lloyd-style for a bounded number of
iterations. Placing the densest clusters first packs similarly sized VMs together.
"""
import logging

import numpy as np

from .config import CLUSTER_MAX_ITERATIONS, CENTROID_TOLERANCE

logger = logging.getLogger(__name__)


class ClusteringResult:
    def __init__(self, vms, k, centroids=None, clusters=None, iterations=0, converged=False):
        self.vms = list(vms)
        self.k = k
        self.centroids = centroids
        self.clusters = clusters or []
        self.iterations = iterations
        self.converged = converged

    @property
    def skipped(self):
        return not self.clusters

    def densities(self):
        return [len(cluster) for cluster in self.clusters]

    def ordered_vms(self):
        """
        Placement order: members of the densest cluster first, within-cluster order kept.
        Without clusters the input order is returned unchanged.
        """
        if self.skipped:
            return list(self.vms)
        by_density = sorted(self.clusters, key=len, reverse=True)
        return [vm for cluster in by_density for vm in cluster]


class VmClusterer:
    def __init__(self, max_iterations=CLUSTER_MAX_ITERATIONS, tolerance=CENTROID_TOLERANCE):
        """
        :param max_iterations: Hard cap on refinement iterations
        :param tolerance: Largest centroid coordinate movement still counted as converged;
                          0.0 requires a bit-exact fixed point
        """
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    @staticmethod
    def features(vms):
        return np.array([[vm.mips, vm.ram] for vm in vms], dtype=float).reshape(-1, 2)

    def find_number_of_clusters(self, vms, hosts):
        """
        Estimate k from the spread of host headroom against VM sizes.
        Returns -1 when there are fewer than 3 VMs (clustering skipped).
        """
        if len(vms) < 3:
            return -1
        if not hosts:
            return 0

        host_mips = [host.available_mips() for host in hosts]
        vm_mips = [vm.mips for vm in vms]
        if min(vm_mips) <= 0:
            return 0

        max_point = int(max(host_mips) / min(vm_mips))
        min_point = int(min(host_mips) / max(vm_mips))
        return int((max_point + min_point) / 2) - 1

    def find_initial_centroids(self, features, k):
        # First centroid: mean of every VM
        centroids = [features.mean(axis=0)]
        chosen = {tuple(centroids[0])}

        while len(centroids) < k:
            mean = np.mean(centroids, axis=0)
            distances = np.linalg.norm(features - mean, axis=1)
            farthest = None
            for i, distance in enumerate(distances):
                if tuple(features[i]) in chosen:
                    continue
                if farthest is None or distance > distances[farthest]:
                    farthest = i
            if farthest is None:
                # Every distinct VM size is already a centroid
                logger.debug("Only %d distinct centroids available for k=%d", len(centroids), k)
                break
            centroids.append(features[farthest].copy())
            chosen.add(tuple(features[farthest]))

        return np.array(centroids)

    @staticmethod
    def assign(features, centroids):
        distances = np.linalg.norm(features[:, np.newaxis, :] - centroids[np.newaxis, :, :], axis=2)
        # argmin keeps the first centroid on ties
        return np.argmin(distances, axis=1)

    def refine(self, features, centroids):
        """
        Lloyd iterations. Returns (labels, centroids, iterations, converged).
        A centroid that loses all its members keeps its previous position.
        """
        labels = self.assign(features, centroids)
        converged = False
        iterations = 0
        for iterations in range(1, self.max_iterations + 1):
            labels = self.assign(features, centroids)
            new_centroids = centroids.copy()
            for j in range(len(centroids)):
                members = features[labels == j]
                if len(members):
                    new_centroids[j] = members.mean(axis=0)

            movement = np.max(np.abs(new_centroids - centroids))
            centroids = new_centroids
            if movement <= self.tolerance:
                converged = True
                break
        return labels, centroids, iterations, converged

    def cluster(self, vms, hosts):
        """
        Cluster the VMs against the candidate destination hosts.

        :param vms: VMs to place
        :param hosts: Hosts that may receive them
        :return: ClusteringResult; skipped (natural order) when k <= 2
        """
        vms = list(vms)
        k = self.find_number_of_clusters(vms, hosts)
        if k <= 2:
            logger.debug("Clustering skipped for %d VMs (k=%d)", len(vms), k)
            return ClusteringResult(vms, k)

        features = self.features(vms)
        centroids = self.find_initial_centroids(features, k)
        labels, centroids, iterations, converged = self.refine(features, centroids)

        clusters = [[vm for vm, label in zip(vms, labels) if label == j]
                    for j in range(len(centroids))]
        result = ClusteringResult(vms, k, centroids, clusters, iterations, converged)
        logger.debug("Clustered %d VMs into %d clusters after %d iterations (converged=%s), densities %s",
                     len(vms), len(clusters), iterations, converged, result.densities())
        return result

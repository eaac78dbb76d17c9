"""Pose-graph optimisation with poses parametrised on the SE(3) Lie algebra."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import TextIO

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

from slamkit.lie import SE3

VERTEX_TAG = "VERTEX_SE3:QUAT"
EDGE_TAG = "EDGE_SE3:QUAT"

_DOF = 6
_INFO_VALUES = _DOF * (_DOF + 1) // 2
_LAMBDA_TAU = 1e-5
_MAX_LAMBDA_TRIES = 10
_BLOCK_ROWS, _BLOCK_COLS = np.meshgrid(np.arange(_DOF), np.arange(_DOF), indexing="ij")


def jr_inv(error: SE3) -> np.ndarray:
    """Approximate inverse right Jacobian of SE(3) at ``error``.

    The identity is used, which holds for small errors.
    """
    if not isinstance(error, SE3):
        raise TypeError("error must be an SE3")
    return np.eye(_DOF)


@dataclass
class PoseVertex:
    """A pose in the graph; fixed vertices are not moved by optimisation."""

    id: int
    estimate: SE3
    fixed: bool = False


@dataclass
class PoseEdge:
    """A relative-pose measurement between two vertices."""

    id: int
    vertex_from: int
    vertex_to: int
    measurement: SE3
    information: np.ndarray = field(default_factory=lambda: np.eye(_DOF))

    def error(self, graph: "PoseGraph") -> np.ndarray:
        """The 6-vector ``log(Z^-1 * T_i^-1 * T_j)``."""
        t_i = graph.vertices[self.vertex_from].estimate
        t_j = graph.vertices[self.vertex_to].estimate
        return (self.measurement.inverse() * t_i.inverse() * t_j).log()

    def _chi2(self, graph: "PoseGraph") -> float:
        e = self.error(graph)
        return float(e @ self.information @ e)


def _numbers(parts: list[str], start: int, count: int, lineno: int) -> list[float]:
    values = parts[start : start + count]
    if len(values) < count:
        raise ValueError(f"line {lineno}: expected {count} numbers after the tag")
    try:
        return [float(v) for v in values]
    except ValueError as exc:
        raise ValueError(f"line {lineno}: malformed number") from exc


def _integer(token: str, lineno: int) -> int:
    try:
        return int(token)
    except ValueError as exc:
        raise ValueError(f"line {lineno}: malformed vertex id {token!r}") from exc


def _pose_fields(pose: SE3) -> list[float]:
    w, x, y, z = pose.unit_quaternion()
    return [*pose.translation, x, y, z, w]


def _fmt(values) -> str:
    return " ".join(repr(float(v)) for v in values)


@dataclass
class PoseGraph:
    """Vertices keyed by id, in insertion order, and the edges between them."""

    vertices: dict[int, PoseVertex] = field(default_factory=dict)
    edges: list[PoseEdge] = field(default_factory=list)

    @classmethod
    def read(cls, stream: TextIO) -> "PoseGraph":
        """Read ``VERTEX_SE3:QUAT`` and ``EDGE_SE3:QUAT`` records; other lines are skipped.

        Vertex 0 is fixed. Edge information is given as its upper triangle.
        """
        graph = cls()
        for lineno, line in enumerate(stream, start=1):
            parts = line.split()
            if not parts:
                continue
            tag = parts[0]
            if tag == VERTEX_TAG:
                if len(parts) < 2:
                    raise ValueError(f"line {lineno}: vertex id missing")
                index = _integer(parts[1], lineno)
                tx, ty, tz, qx, qy, qz, qw = _numbers(parts, 2, 7, lineno)
                if index in graph.vertices:
                    raise ValueError(f"line {lineno}: duplicate vertex {index}")
                graph.vertices[index] = PoseVertex(
                    index, SE3.from_quaternion(qw, qx, qy, qz, (tx, ty, tz)), fixed=index == 0
                )
            elif tag == EDGE_TAG:
                if len(parts) < 3:
                    raise ValueError(f"line {lineno}: edge vertex ids missing")
                first, second = _integer(parts[1], lineno), _integer(parts[2], lineno)
                for vid in (first, second):
                    if vid not in graph.vertices:
                        raise ValueError(f"line {lineno}: edge refers to unknown vertex {vid}")
                tx, ty, tz, qx, qy, qz, qw = _numbers(parts, 3, 7, lineno)
                given = _numbers(parts, 10, min(len(parts) - 10, _INFO_VALUES), lineno)
                information = np.eye(_DOF)
                upper = [(i, j) for i in range(_DOF) for j in range(i, _DOF)]
                for (i, j), value in zip(upper, given):
                    information[i, j] = information[j, i] = value
                graph.edges.append(
                    PoseEdge(
                        len(graph.edges),
                        first,
                        second,
                        SE3.from_quaternion(qw, qx, qy, qz, (tx, ty, tz)),
                        information,
                    )
                )
        return graph

    def write(self, stream: TextIO) -> None:
        """Write the graph in the format ``read`` accepts."""
        for vertex in self.vertices.values():
            stream.write(f"{VERTEX_TAG} {vertex.id} {_fmt(_pose_fields(vertex.estimate))}\n")
        for edge in self.edges:
            upper = [edge.information[i, j] for i in range(_DOF) for j in range(i, _DOF)]
            stream.write(
                f"{EDGE_TAG} {edge.vertex_from} {edge.vertex_to} "
                f"{_fmt(_pose_fields(edge.measurement))} {_fmt(upper)}\n"
            )

    def total_error(self) -> float:
        """Sum over edges of ``e^T * information * e``."""
        return sum(edge._chi2(self) for edge in self.edges)

    def _linearize(self, index: dict[int, int]) -> tuple[sparse.csc_matrix, np.ndarray]:
        dim = _DOF * len(index)
        rows: list[np.ndarray] = []
        cols: list[np.ndarray] = []
        vals: list[np.ndarray] = []
        gradient = np.zeros(dim)
        for edge in self.edges:
            err = edge.error(self)
            t_j = self.vertices[edge.vertex_to].estimate
            jac_j = jr_inv(SE3.exp(err)) @ t_j.inverse().adjoint()
            blocks = [
                (index.get(edge.vertex_from), -jac_j),
                (index.get(edge.vertex_to), jac_j),
            ]
            blocks = [(k, jac) for k, jac in blocks if k is not None]
            omega = edge.information
            for ka, ja in blocks:
                weighted = ja.T @ omega
                gradient[_DOF * ka : _DOF * (ka + 1)] += weighted @ err
                for kb, jb in blocks:
                    rows.append((_BLOCK_ROWS + _DOF * ka).ravel())
                    cols.append((_BLOCK_COLS + _DOF * kb).ravel())
                    vals.append((weighted @ jb).ravel())
        if vals:
            hessian = sparse.coo_matrix(
                (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))), shape=(dim, dim)
            ).tocsc()
        else:
            hessian = sparse.csc_matrix((dim, dim))
        return hessian, gradient

    def _apply(self, index: dict[int, int], dx: np.ndarray) -> None:
        for vid, k in index.items():
            vertex = self.vertices[vid]
            vertex.estimate = SE3.exp(dx[_DOF * k : _DOF * (k + 1)]) * vertex.estimate

    def optimize(self, iterations: int = 30) -> float:
        """Levenberg-Marquardt with left-multiplied updates; returns the final total error."""
        free = [vid for vid, vertex in self.vertices.items() if not vertex.fixed]
        index = {vid: k for k, vid in enumerate(free)}
        cost = self.total_error()
        if not index or not self.edges:
            return cost

        dim = _DOF * len(index)
        identity = sparse.identity(dim, format="csc")
        lam: float | None = None
        nu = 2.0
        for _ in range(iterations):
            hessian, gradient = self._linearize(index)
            if lam is None:
                lam = _LAMBDA_TAU * max(float(hessian.diagonal().max()), 1e-12)
            accepted = False
            for _attempt in range(_MAX_LAMBDA_TRIES):
                dx = np.asarray(spsolve((hessian + lam * identity).tocsc(), -gradient)).reshape(-1)
                if not np.all(np.isfinite(dx)):
                    lam *= nu
                    nu *= 2.0
                    continue
                backup = {vid: self.vertices[vid].estimate for vid in index}
                self._apply(index, dx)
                new_cost = self.total_error()
                scale = float(dx @ (lam * dx - gradient)) + 1e-3
                rho = (cost - new_cost) / scale
                if rho > 0.0 and np.isfinite(new_cost):
                    lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                    nu = 2.0
                    cost = new_cost
                    accepted = True
                    break
                for vid, estimate in backup.items():
                    self.vertices[vid].estimate = estimate
                lam *= nu
                nu *= 2.0
            if not accepted:
                break
        return cost


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Optimise a pose graph stored in g2o format.")
    parser.add_argument("graph", help="input graph, e.g. sphere.g2o")
    parser.add_argument("--output", default="result_lie.g2o")
    parser.add_argument("--iterations", type=int, default=30)
    args = parser.parse_args(argv)

    try:
        with open(args.graph) as stream:
            graph = PoseGraph.read(stream)
    except FileNotFoundError:
        print(f"file {args.graph} does not exist.")
        return 1

    print(f"read total {len(graph.vertices)} vertices, {len(graph.edges)} edges.")
    print("optimizing ...")
    initial = graph.total_error()
    final = graph.optimize(args.iterations)
    print(f"total error: {initial:g} -> {final:g}")
    print("saving optimization results ...")
    with open(args.output, "w") as stream:
        graph.write(stream)
    return 0
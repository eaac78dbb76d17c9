"""Gauss-Newton fitting of the curve ``y = exp(a x^2 + b x + c)``."""

from __future__ import annotations

import argparse
import enum
import math
import time
from dataclasses import dataclass, field

import numpy as np


class StopReason(enum.Enum):
    MAX_ITERATIONS = "max_iterations"
    NAN = "nan"
    COST_INCREASED = "cost_increased"


@dataclass(frozen=True)
class Step:
    """One accepted Gauss-Newton update."""

    cost: float
    update: tuple[float, float, float]
    params: tuple[float, float, float]


@dataclass
class FitResult:
    """Outcome of a Gauss-Newton run."""

    params: tuple[float, float, float]
    reason: StopReason
    final_cost: float
    steps: list[Step] = field(default_factory=list)

    @property
    def cost(self) -> float:
        """Cost at the last accepted step."""
        return self.steps[-1].cost if self.steps else self.final_cost


def generate_data(a, b, c, count=100, sigma=1.0, rng=None):
    """Sample ``count`` noisy points of the curve at ``x = i / 100``.

    The noise is Gaussian with standard deviation ``sigma ** 2``.
    """
    if rng is None:
        rng = np.random.default_rng()
    xs = np.arange(count) / 100.0
    ys = np.exp(a * xs * xs + b * xs + c)
    if sigma != 0.0:
        ys = ys + rng.normal(0.0, sigma * sigma, size=count)
    return xs, ys


def gauss_newton(xs, ys, initial, iterations=100, sigma=1.0) -> FitResult:
    """Estimate ``(a, b, c)`` from data, starting at ``initial``."""
    if sigma <= 0.0:
        raise ValueError("sigma must be positive")
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    if xs.shape != ys.shape:
        raise ValueError("xs and ys must have the same shape")
    a, b, c = (float(v) for v in initial)
    weight = 1.0 / (sigma * sigma)
    steps: list[Step] = []
    last_cost = 0.0
    cost = 0.0
    reason = StopReason.MAX_ITERATIONS

    for iteration in range(iterations):
        predicted = np.exp(a * xs * xs + b * xs + c)
        error = ys - predicted
        jacobian = np.column_stack([-xs * xs * predicted, -xs * predicted, -predicted])
        hessian = weight * jacobian.T @ jacobian
        gradient = -weight * jacobian.T @ error
        cost = float(error @ error)

        try:
            dx = np.linalg.solve(hessian, gradient)
        except np.linalg.LinAlgError:
            dx = np.full(3, np.nan)
        if math.isnan(dx[0]):
            reason = StopReason.NAN
            break
        if iteration > 0 and cost >= last_cost:
            reason = StopReason.COST_INCREASED
            break

        a += dx[0]
        b += dx[1]
        c += dx[2]
        last_cost = cost
        steps.append(Step(cost, (float(dx[0]), float(dx[1]), float(dx[2])), (a, b, c)))

    return FitResult(params=(a, b, c), reason=reason, final_cost=cost, steps=steps)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Fit exp(a x^2 + b x + c) with Gauss-Newton.")
    parser.add_argument("--seed", type=int, default=None, help="random seed for the noise")
    args = parser.parse_args(argv)

    xs, ys = generate_data(1.0, 2.0, 1.0, count=100, sigma=1.0, rng=np.random.default_rng(args.seed))

    start = time.perf_counter()
    result = gauss_newton(xs, ys, (2.0, -1.0, 5.0), iterations=100, sigma=1.0)
    elapsed = time.perf_counter() - start

    for step in result.steps:
        update = " ".join(f"{v:g}" for v in step.update)
        a, b, c = step.params
        print(f"total cost: {step.cost:g}, \t\tupdate: {update}\t\testimated params: {a:g},{b:g},{c:g}")
    if result.reason is StopReason.NAN:
        print("result is nan!")
    elif result.reason is StopReason.COST_INCREASED:
        print(f"cost: {result.final_cost:g}>= last cost: {result.cost:g}, break.")

    print(f"solve time cost = {elapsed:g} seconds. ")
    a, b, c = result.params
    print(f"estimated abc = {a:g}, {b:g}, {c:g}")
    return 0
"""Environment contract and the built-in control problems."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .errors import ConfigurationError

StepResult = Tuple[np.ndarray, float, bool]


class Environment(ABC):
    """
    Episode-based environment.

    Evaluators only rely on ``reset`` / ``step`` and the class attributes below;
    ``default_action`` is applied when a program's action registers do not
    single out one action.
    """

    name: str = "environment"
    n_inputs: int = 0
    n_actions: int = 0
    default_action: int = 0
    max_episode_steps: int = 200

    @abstractmethod
    def reset(self, seed: Optional[int] = None) -> np.ndarray:
        """Start an episode and return the first observation."""

    @abstractmethod
    def step(self, action: int) -> StepResult:
        """Apply an action and return (observation, reward, done)."""

    def _check_action(self, action: int) -> int:
        if not 0 <= int(action) < self.n_actions:
            raise ValueError(f"Action {action} outside [0, {self.n_actions}) for {self.name}.")
        return int(action)


class CartPole(Environment):
    """Classic cart-pole balancing: +1 reward per step while the pole stays up."""

    name = "cart-pole-lgp"
    n_inputs = 4
    n_actions = 2
    default_action = 0
    max_episode_steps = 500

    gravity = 9.8
    mass_cart = 1.0
    mass_pole = 0.1
    half_length = 0.5
    force_mag = 10.0
    tau = 0.02
    theta_threshold = 12 * 2 * math.pi / 360
    x_threshold = 2.4

    def __init__(self, max_episode_steps: Optional[int] = None):
        if max_episode_steps is not None:
            self.max_episode_steps = int(max_episode_steps)
        self.state = np.zeros(4, dtype=np.float64)
        self.done = True

    def reset(self, seed: Optional[int] = None) -> np.ndarray:
        rng = np.random.default_rng(seed)
        self.state = rng.uniform(-0.05, 0.05, size=4)
        self.done = False
        return self.state.copy()

    def step(self, action: int) -> StepResult:
        if self.done:
            raise RuntimeError("step() called on a finished cart-pole episode.")
        action = self._check_action(action)
        x, x_dot, theta, theta_dot = self.state
        force = self.force_mag if action == 1 else -self.force_mag
        total_mass = self.mass_cart + self.mass_pole
        pole_mass_length = self.mass_pole * self.half_length

        cos_theta = math.cos(theta)
        sin_theta = math.sin(theta)
        temp = (force + pole_mass_length * theta_dot**2 * sin_theta) / total_mass
        theta_acc = (self.gravity * sin_theta - cos_theta * temp) / (
            self.half_length * (4.0 / 3.0 - self.mass_pole * cos_theta**2 / total_mass)
        )
        x_acc = temp - pole_mass_length * theta_acc * cos_theta / total_mass

        x = x + self.tau * x_dot
        x_dot = x_dot + self.tau * x_acc
        theta = theta + self.tau * theta_dot
        theta_dot = theta_dot + self.tau * theta_acc
        self.state = np.array([x, x_dot, theta, theta_dot], dtype=np.float64)

        self.done = bool(
            x < -self.x_threshold
            or x > self.x_threshold
            or theta < -self.theta_threshold
            or theta > self.theta_threshold
        )
        return self.state.copy(), 1.0, self.done


class MountainCar(Environment):
    """Under-powered car in a valley: -1 reward per step until the flag is reached."""

    name = "mountain-car-lgp"
    n_inputs = 2
    n_actions = 3
    default_action = 1  # no acceleration
    max_episode_steps = 200

    min_position = -1.2
    max_position = 0.6
    max_speed = 0.07
    goal_position = 0.5
    force = 0.001
    gravity = 0.0025

    def __init__(self, max_episode_steps: Optional[int] = None):
        if max_episode_steps is not None:
            self.max_episode_steps = int(max_episode_steps)
        self.state = np.zeros(2, dtype=np.float64)
        self.done = True

    def reset(self, seed: Optional[int] = None) -> np.ndarray:
        rng = np.random.default_rng(seed)
        self.state = np.array([rng.uniform(-0.6, -0.4), 0.0], dtype=np.float64)
        self.done = False
        return self.state.copy()

    def step(self, action: int) -> StepResult:
        if self.done:
            raise RuntimeError("step() called on a finished mountain-car episode.")
        action = self._check_action(action)
        position, velocity = self.state
        velocity += (action - 1) * self.force + math.cos(3 * position) * (-self.gravity)
        velocity = float(np.clip(velocity, -self.max_speed, self.max_speed))
        position += velocity
        position = float(np.clip(position, self.min_position, self.max_position))
        if position == self.min_position and velocity < 0:
            velocity = 0.0
        self.state = np.array([position, velocity], dtype=np.float64)
        self.done = bool(position >= self.goal_position and velocity >= 0)
        return self.state.copy(), -1.0, self.done


EnvironmentFactory = Callable[..., Environment]

ENVIRONMENTS: Dict[str, EnvironmentFactory] = {
    "cart-pole-lgp": CartPole,
    "cart-pole": CartPole,
    "mountain-car-lgp": MountainCar,
    "mountain-car": MountainCar,
}


def register_environment(name: str, factory: EnvironmentFactory) -> None:
    """Make an environment constructible by name."""
    key = name.strip().lower()
    if not key:
        raise ValueError("Environment name must be a non-empty string.")
    ENVIRONMENTS[key] = factory


def available_environments() -> List[str]:
    return sorted(ENVIRONMENTS)


def resolve_environment(name: str) -> EnvironmentFactory:
    """Look up an environment factory, raising ConfigurationError when unknown."""
    key = str(name).strip().lower()
    if key not in ENVIRONMENTS:
        raise ConfigurationError(
            f"Unknown environment '{name}'. Available: {', '.join(available_environments())}."
        )
    return ENVIRONMENTS[key]


def make_environment(name: str, **kwargs) -> Environment:
    return resolve_environment(name)(**kwargs)


__all__ = [
    "Environment",
    "StepResult",
    "CartPole",
    "MountainCar",
    "ENVIRONMENTS",
    "EnvironmentFactory",
    "register_environment",
    "available_environments",
    "resolve_environment",
    "make_environment",
]

import logging
from collections import deque, namedtuple
from dataclasses import dataclass

import numpy as np
import pandas as pd

from wastewater_models import Inlet, Outlet, ProcessUnit, create_unit
from wastewater_quality import WaterParameter

logger = logging.getLogger(__name__)

# Typical train loaded by `Pipeline.load_default_example`, in flow order.
DEFAULT_TRAIN = (
    "Primary Clarifier",
    "Primary Sedimentation Tank",
    "Aeration Tank",
    "Active Sludge Process",
    "Nitrification Tank",
    "Secondary Clarifier",
    "Chlorine Disinfection Unit",
    "Filtration",
)


class PipelineStructureError(IndexError):
    """Raised when a unit is inserted or removed at an invalid position."""


# --- Configuration ---
@dataclass(frozen=True)
class SimulationConfig:
    time_step: float = 0.016        # s, nominal frame duration
    speed_min: float = 0.1
    speed_max: float = 5.0
    default_speed: float = 1.0
    history_capacity: int = 100     # samples kept per history key
    history_by_unit: bool = False   # key history by (position, parameter)

    def __post_init__(self):
        if self.time_step <= 0.0:
            raise ValueError("time_step must be positive")
        if not (0.0 < self.speed_min <= self.speed_max):
            raise ValueError("speed range must satisfy 0 < speed_min <= speed_max")
        if not (self.speed_min <= self.default_speed <= self.speed_max):
            raise ValueError("default_speed must lie within [speed_min, speed_max]")
        if self.history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")

    def clamp_speed(self, speed):
        return min(max(float(speed), self.speed_min), self.speed_max)


# --- History Recorder ---
class ParameterHistory:
    """
    Bounded FIFO time series, one per key.

    Keys are WaterParameter members by default, so every unit's outlet value
    lands in the same series for that parameter.
    """
    def __init__(self, capacity=100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = int(capacity)
        self._series = {}

    def add_value(self, key, value):
        series = self._series.get(key)
        if series is None:
            series = self._series[key] = deque(maxlen=self.capacity)
        series.append(float(value))

    def values(self, key):
        return list(self._series.get(key, ()))

    def as_array(self, key):
        return np.array(self.values(key), dtype=float)

    def keys(self):
        return list(self._series)

    def clear(self):
        self._series.clear()

    def to_frame(self):
        """Returns a DataFrame with one column per key, oldest value first."""
        columns = {}
        for key, series in self._series.items():
            if isinstance(key, tuple):
                position, parameter = key
                name = f"{position}:{parameter.name}"
            else:
                name = key.name
            columns[name] = pd.Series(list(series), dtype=float)
        return pd.DataFrame(columns)

    def __contains__(self, key):
        return key in self._series

    def __len__(self):
        return len(self._series)


Connection = namedtuple('Connection', ['upstream', 'downstream'])


# --- Pipeline Engine ---
class Pipeline:
    """
    Ordered treatment train from the Inlet to the Outlet.

    Each call to `advance` runs two separate passes: every unit downstream of
    the Inlet first recomputes its outlet from the inlet it already holds,
    then every outlet is copied into the next unit's inlet. A change therefore
    moves exactly one unit further downstream per tick.
    """
    def __init__(self, config=None):
        self.config = config or SimulationConfig()
        self.inlet = Inlet()
        self.outlet = Outlet()
        self.units = [self.inlet, self.outlet]
        self.connections = []
        self.history = ParameterHistory(self.config.history_capacity)
        self.ticks = 0
        self.elapsed = 0.0
        self.rebuild_connections()

    # --- External read/write access ---
    @property
    def influent(self):
        """The water entering the train (the Inlet's outlet sample)."""
        return self.inlet.outlet_water

    @influent.setter
    def influent(self, sample):
        self.inlet.outlet_water = sample.copy()

    @property
    def effluent(self):
        return self.outlet.outlet_water

    @property
    def interior(self):
        return self.units[1:-1]

    def __len__(self):
        return len(self.units)

    def __iter__(self):
        return iter(self.units)

    def __getitem__(self, index):
        return self.units[index]

    # --- Structural mutation (between ticks only) ---
    def add_unit(self, unit, position=None):
        """
        Inserts a unit into the train.

        Args:
            unit (str or ProcessUnit): a registry name or a unit instance.
            position (int, optional): index the unit will occupy; defaults to
                just before the Outlet. Must lie within 1..len(units)-1.

        Returns:
            ProcessUnit: the inserted unit.
        """
        if isinstance(unit, str):
            unit = create_unit(unit)
        elif not isinstance(unit, ProcessUnit):
            raise TypeError(f"Expected a unit type name or ProcessUnit, got {type(unit).__name__}")
        if isinstance(unit, (Inlet, Outlet)):
            raise PipelineStructureError("The train already has its Inlet and Outlet")
        if position is None:
            position = len(self.units) - 1
        if not 1 <= position <= len(self.units) - 1:
            raise PipelineStructureError(
                f"Insert position {position} outside 1..{len(self.units) - 1}")
        self.units.insert(position, unit)
        self.rebuild_connections()
        logger.info("Added %s at position %d", unit.name, position)
        return unit

    def remove_unit(self, index):
        if not 1 <= index <= len(self.units) - 2:
            raise PipelineStructureError(
                f"Cannot remove position {index}; removable positions are 1..{len(self.units) - 2}")
        unit = self.units.pop(index)
        self.rebuild_connections()
        logger.info("Removed %s from position %d", unit.name, index)
        return unit

    def rebuild_connections(self):
        self.connections = [Connection(up, down) for up, down in zip(self.units, self.units[1:])]
        return self.connections

    def reset(self):
        self.units = [self.inlet, self.outlet]
        self.rebuild_connections()
        self.history.clear()
        self.ticks = 0
        self.elapsed = 0.0
        logger.info("Pipeline reset")

    def load_default_example(self):
        self.reset()
        for type_name in DEFAULT_TRAIN:
            self.add_unit(type_name)
        return self.units

    # --- Simulation ---
    def advance(self, dt):
        """Runs one tick: compute, propagate, then record history."""
        if dt < 0:
            raise ValueError(f"Time step must not be negative, got {dt}")

        for unit in self.units[1:]:
            unit.simulate(dt)

        for upstream, downstream in zip(self.units, self.units[1:]):
            downstream.inlet_water = upstream.outlet_water.copy()

        self._record_history()
        self.ticks += 1
        self.elapsed += dt
        logger.debug("Tick %d complete (dt=%.4f)", self.ticks, dt)

    def run(self, steps, dt=None):
        dt = self.config.time_step if dt is None else dt
        for _ in range(steps):
            self.advance(dt)

    def _record_history(self):
        by_unit = self.config.history_by_unit
        for position, unit in enumerate(self.units):
            for parameter, value in unit.outlet_water.items():
                key = (position, parameter) if by_unit else parameter
                self.history.add_value(key, value)

    def snapshot(self):
        """Outlet quality of every unit as a DataFrame (rows: units, columns: parameter labels)."""
        rows = [[unit.outlet_water.get(p) for p in WaterParameter] for unit in self.units]
        index = [f"{i}. {unit.name}" for i, unit in enumerate(self.units)]
        return pd.DataFrame(rows, index=index, columns=[p.label for p in WaterParameter])

    def unit_water(self, index):
        """Inlet and outlet quality of one unit side by side (rows: parameter labels)."""
        if not 0 <= index < len(self.units):
            raise PipelineStructureError(f"No unit at position {index}")
        unit = self.units[index]
        return pd.DataFrame({
            "Inlet": [unit.inlet_water.get(p) for p in WaterParameter],
            "Outlet": [unit.outlet_water.get(p) for p in WaterParameter],
        }, index=[p.label for p in WaterParameter])


# --- Driver Clock ---
class SimulationDriver:
    """Turns elapsed wall-clock time into pipeline ticks while running."""
    def __init__(self, pipeline=None, config=None):
        self.pipeline = pipeline if pipeline is not None else Pipeline(config)
        self.config = self.pipeline.config
        self.running = False
        self._speed = self.config.default_speed

    @property
    def speed(self):
        return self._speed

    @speed.setter
    def speed(self, value):
        self._speed = self.config.clamp_speed(value)

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def step(self, elapsed_seconds):
        """Advances once with dt = elapsed * speed. Returns True if a tick ran."""
        if not self.running:
            return False
        self.pipeline.advance(elapsed_seconds * self._speed)
        return True

    def set_influent(self, sample=None, **values):
        """Writes influent values between ticks; a full sample replaces everything."""
        if sample is not None:
            self.pipeline.influent = sample
        for name, value in values.items():
            self.pipeline.influent.set(name, value)

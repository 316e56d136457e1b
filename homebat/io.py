# homebat/io.py
"""
I/O utilities for battery configuration, price series and fleet snapshots.
Supports YAML, JSON and CSV formats.
"""

import json
import yaml
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
import logging

from pydantic import BaseModel, Field

from .schema import (
    BatteryParams, BatteryState, DistributionTuning, PricePeriod, ScheduleOptions,
    DEFAULT_CAPACITY_KWH, DEFAULT_CHARGE_TIERS, DEFAULT_DISCHARGE_TIERS,
)
from .distribution import DEFAULT_MIN_LOAD_WATTS

logger = logging.getLogger(__name__)


class DistributionSettings(BaseModel):
    min_load_watts: float = DEFAULT_MIN_LOAD_WATTS
    tuning: DistributionTuning = Field(default_factory=DistributionTuning)


class HomebatConfig(BaseModel):
    battery: BatteryParams = Field(default_factory=BatteryParams)
    schedule: ScheduleOptions = Field(default_factory=ScheduleOptions)
    distribution: DistributionSettings = Field(default_factory=DistributionSettings)


def _read_structured(path: Path) -> Any:
    if path.suffix in ['.yaml', '.yml']:
        with open(path, 'r') as f:
            return yaml.safe_load(f)
    elif path.suffix == '.json':
        with open(path, 'r') as f:
            return json.load(f)
    raise ValueError(f"Unsupported config format: {path.suffix}")


class DataLoader:
    """Loads configuration, price series and fleet snapshots."""

    @staticmethod
    def load_config(config_path: Union[str, Path]) -> HomebatConfig:
        """
        Load configuration from YAML or JSON.

        Missing sections fall back to the reference hardware defaults.
        """
        config_path = Path(config_path)
        config = _read_structured(config_path) or {}
        result = HomebatConfig(**config)
        logger.info(f"Loaded configuration from {config_path.name}")
        return result

    @staticmethod
    def load_prices(path: Union[str, Path]) -> List[PricePeriod]:
        """
        Load a price series from CSV.

        Expects a 'price' column and optionally a 'time' column.
        """
        path = Path(path)

        if path.suffix == '.csv':
            df = pd.read_csv(path)
        else:
            raise ValueError(f"Unsupported time series format: {path.suffix}")

        if 'price' not in df.columns:
            raise ValueError(f"{path.name} has no 'price' column")

        times = pd.to_datetime(df['time']) if 'time' in df.columns else None

        prices = prices_from_series(
            pd.Series(df['price'].astype(float).values,
                      index=pd.DatetimeIndex(times) if times is not None else None))
        logger.info(f"Loaded {len(prices)} price periods from {path.name}")
        return prices

    @staticmethod
    def load_fleet(path: Union[str, Path]) -> List[BatteryState]:
        """Load battery states from YAML/JSON: a list, or a mapping with a 'batteries' list."""
        path = Path(path)
        data = _read_structured(path)
        if isinstance(data, dict):
            data = data.get('batteries', [])
        fleet = [BatteryState(**entry) for entry in data or []]
        logger.info(f"Loaded {len(fleet)} batteries from {path.name}")
        return fleet


def prices_from_series(series: pd.Series) -> List[PricePeriod]:
    """Convert a price Series (optionally time indexed) to price periods."""
    if isinstance(series.index, pd.DatetimeIndex):
        return [PricePeriod(start_time=ts.to_pydatetime(), price=float(p))
                for ts, p in series.items()]
    return [PricePeriod(price=float(p)) for p in series.values]


class DataWriter:
    """Write schedules to various formats."""

    @staticmethod
    def save_schedule(schedule, output_path: Union[str, Path],
                      format: str = 'csv', include_metadata: bool = True):
        """
        Save a schedule to file.

        Args:
            schedule: Schedule from compute_schedule
            output_path: Output file path
            format: Output format ('csv' or 'json')
            include_metadata: Whether to include solver metadata
        """
        output_path = Path(output_path)
        df = schedule.to_dataframe()

        if format == 'csv':
            df.to_csv(output_path)
            if include_metadata:
                meta_path = output_path.with_suffix('.meta.json')
                with open(meta_path, 'w') as f:
                    json.dump(DataWriter._get_metadata_dict(schedule), f, indent=2, default=str)

        elif format == 'json':
            output = {
                'data': df.reset_index().to_dict('records'),
                'metadata': DataWriter._get_metadata_dict(schedule) if include_metadata else {}
            }
            with open(output_path, 'w') as f:
                json.dump(output, f, indent=2, default=str)
        else:
            raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Schedule saved to {output_path}")

    @staticmethod
    def _get_metadata_dict(schedule) -> Dict:
        return {
            'objective_value': schedule.objective_value,
            'solve_time': schedule.solve_time,
            'status': schedule.status,
            'horizon': schedule.horizon,
        }


def generate_template(output_path: Union[str, Path]):
    """
    Generate a template configuration file with the reference hardware values.
    """
    template = {
        'battery': {
            'capacity_kwh': DEFAULT_CAPACITY_KWH,
            'start_soc_percent': 50,
            'charge_tiers': [dict(t) for t in DEFAULT_CHARGE_TIERS],
            'discharge_tiers': [dict(t) for t in DEFAULT_DISCHARGE_TIERS],
        },
        'schedule': {
            'interval_minutes': 60,
            'min_price_delta': 0.1,
            'cleanup': True,
        },
        'distribution': {
            'min_load_watts': DEFAULT_MIN_LOAD_WATTS,
        },
    }

    output_path = Path(output_path)
    with open(output_path, 'w') as f:
        yaml.dump(template, f, default_flow_style=False, sort_keys=False)


def create_sample_prices(output_path: Union[str, Path], start: str = '2024-01-01T00:00:00',
                         periods: int = 24, interval_minutes: int = 60,
                         seed: Optional[int] = 42) -> pd.DataFrame:
    """Write a daily-shaped sample price series to CSV."""
    index = pd.date_range(start, periods=periods, freq=f"{interval_minutes}min")
    hours = np.asarray(index.hour + index.minute / 60.0, dtype=float)
    # Overnight low, evening peak
    base = 0.32 - 0.05 * np.cos(2 * np.pi * (hours - 3) / 24) + 0.12 * np.exp(-((hours - 19.5) ** 2) / 4)
    rng = np.random.default_rng(seed)
    noise = rng.normal(0, 0.005, len(index))
    df = pd.DataFrame({'time': index, 'price': np.round(base + noise, 4)})
    df.to_csv(output_path, index=False)
    return df

# tests/test_io.py
"""Tests for configuration, price and fleet loading and schedule export"""

import json

import numpy as np
import pandas as pd
import pytest
import yaml
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from homebat import BatteryParams, DataLoader, DataWriter, HomebatConfig, compute_schedule, generate_template
from homebat.io import create_sample_prices, prices_from_series
from homebat.optimization.lp_model import LPSolution


class ZeroSolver:
    def solve(self, lp):
        return LPSolution(values=np.zeros(lp.num_variables), objective_value=0.0, status="fixed")


def test_template_roundtrip(tmp_path):
    path = tmp_path / "config.yaml"
    generate_template(path)

    config = DataLoader.load_config(path)
    assert isinstance(config, HomebatConfig)
    assert config.battery.capacity_kwh == pytest.approx(5.05)
    assert config.battery.start_soc_percent == 50
    assert config.battery.max_charge_watts == 2200
    assert config.battery.max_discharge_watts == 1550
    assert config.schedule.interval_minutes == 60
    assert config.distribution.min_load_watts == 50


def test_empty_config_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config = DataLoader.load_config(path)
    assert config.battery == BatteryParams()
    assert config.distribution.tuning.soc_hysteresis == 20


def test_json_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"schedule": {"interval_minutes": 15, "min_price_delta": 0.05}}))
    config = DataLoader.load_config(path)
    assert config.schedule.interval_minutes == 15
    assert config.schedule.horizon_limit == 120


def test_unsupported_config_format(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("")
    with pytest.raises(ValueError):
        DataLoader.load_config(path)


def test_load_prices_csv(tmp_path):
    path = tmp_path / "prices.csv"
    df = create_sample_prices(path, periods=12, interval_minutes=30)

    prices = DataLoader.load_prices(path)
    assert len(prices) == 12
    assert prices[0].price == pytest.approx(df['price'].iloc[0])
    assert (prices[1].start_time - prices[0].start_time).total_seconds() == 1800


def test_load_prices_without_time(tmp_path):
    path = tmp_path / "prices.csv"
    pd.DataFrame({'price': [0.3, 0.4]}).to_csv(path, index=False)

    prices = DataLoader.load_prices(path)
    assert [p.price for p in prices] == [0.3, 0.4]
    assert prices[0].start_time is None


def test_load_prices_requires_price_column(tmp_path):
    path = tmp_path / "prices.csv"
    pd.DataFrame({'value': [0.3]}).to_csv(path, index=False)
    with pytest.raises(ValueError):
        DataLoader.load_prices(path)


def test_prices_from_series():
    index = pd.date_range("2024-01-01", periods=3, freq="60min")
    prices = prices_from_series(pd.Series([0.1, 0.2, 0.3], index=index))
    assert [p.price for p in prices] == [0.1, 0.2, 0.3]
    assert prices[2].start_time.hour == 2


def test_load_fleet(tmp_path):
    path = tmp_path / "fleet.yaml"
    path.write_text(yaml.dump({"batteries": [
        {"id": "garage", "max_charge_watts": 2200, "max_discharge_watts": 1550,
         "efficient_discharge_watts": 765, "soc_percent": 80},
        {"id": "attic", "max_charge_watts": 2200, "max_discharge_watts": 1550,
         "soc_percent": 40, "last_target_watts": -300},
    ]}))

    fleet = DataLoader.load_fleet(path)
    assert [b.id for b in fleet] == ["garage", "attic"]
    assert fleet[0].efficient_discharge_limit == 765
    assert fleet[1].efficient_discharge_limit == 1550
    assert fleet[1].last_target_watts == -300


def test_save_schedule_csv_and_json(tmp_path):
    schedule = compute_schedule([0.3, 0.4, 0.5], BatteryParams(start_soc_percent=30),
                                solver=ZeroSolver())

    csv_path = tmp_path / "schedule.csv"
    DataWriter.save_schedule(schedule, csv_path)
    df = pd.read_csv(csv_path, index_col=0)
    assert list(df['soc_percent']) == [30, 30, 30]
    meta = json.loads(csv_path.with_suffix('.meta.json').read_text())
    assert meta['status'] == "fixed"
    assert meta['horizon'] == 3

    json_path = tmp_path / "schedule.json"
    DataWriter.save_schedule(schedule, json_path, format='json')
    data = json.loads(json_path.read_text())
    assert len(data['data']) == 3
    assert data['data'][0]['period'] == 0

    with pytest.raises(ValueError):
        DataWriter.save_schedule(schedule, tmp_path / "schedule.xml", format='xml')


def test_load_prices_rejects_other_formats(tmp_path):
    path = tmp_path / "prices.parquet"
    path.write_bytes(b"")
    with pytest.raises(ValueError):
        DataLoader.load_prices(path)

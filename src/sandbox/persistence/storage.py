"""Backtest run storage."""

import json
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from src.core.constants import from_wad
from src.sandbox.models import BacktestRun

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and datetime types."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class BacktestStorage:
    """
    Persistent storage for backtest runs.

    Uses JSON files for simplicity and human-readability.
    Directory structure:
        storage_dir/
            {run_name}/
                {run_id}.json
    """

    def __init__(self, storage_dir: Optional[Path] = None):
        """
        Initialize storage.

        Args:
            storage_dir: Base directory (default: settings.results_dir)
        """
        if storage_dir is None:
            from config import get_settings

            storage_dir = get_settings().results_dir

        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _safe_name(name: str) -> str:
        safe = re.sub(r"[^a-z0-9]+", "_", name.lower())[:40].strip("_")
        return safe or "backtest"

    def save_run(self, run: BacktestRun, run_id: Optional[str] = None) -> str:
        """
        Save a backtest run.

        Returns:
            Run ID
        """
        if run_id is None:
            run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")

        run_dir = self.storage_dir / self._safe_name(run.name)
        run_dir.mkdir(parents=True, exist_ok=True)
        file_path = run_dir / f"{run_id}.json"

        data = run.to_dict()
        data["_id"] = run_id

        with open(file_path, "w") as f:
            json.dump(data, f, cls=DecimalEncoder, indent=2)

        logger.info(f"Saved backtest run: {file_path}")
        return run_id

    def load_run(self, name: str, run_id: str) -> Optional[BacktestRun]:
        file_path = self.storage_dir / self._safe_name(name) / f"{run_id}.json"

        if not file_path.exists():
            logger.warning(f"Run not found: {name}/{run_id}")
            return None

        with open(file_path, "r") as f:
            data = json.load(f)

        data.pop("_id", None)
        return BacktestRun.from_dict(data)

    def list_runs(self, name: str) -> List[Dict[str, Any]]:
        """Summaries of all stored runs with `name`, newest first."""
        run_dir = self.storage_dir / self._safe_name(name)
        if not run_dir.exists():
            return []

        runs = []
        for file_path in run_dir.glob("*.json"):
            with open(file_path, "r") as f:
                data = json.load(f)
            metrics = data.get("metrics") or {}
            runs.append({
                "id": data.get("_id", file_path.stem),
                "name": data.get("config", {}).get("name"),
                "start": data.get("start"),
                "end": data.get("end"),
                "success": data.get("success"),
                "total_return": metrics.get("total_return"),
                "max_drawdown": metrics.get("max_drawdown"),
                "created_at": data.get("created_at"),
            })

        runs.sort(key=lambda x: x.get("created_at") or "", reverse=True)
        return runs

    def delete_run(self, name: str, run_id: str) -> bool:
        file_path = self.storage_dir / self._safe_name(name) / f"{run_id}.json"
        if file_path.exists():
            file_path.unlink()
            logger.info(f"Deleted run: {name}/{run_id}")
            return True
        return False

    # CSV Export

    @staticmethod
    def results_frame(run: BacktestRun) -> pd.DataFrame:
        """
        One row per step with USD values.

        Per-asset columns are named `value_<asset>` and `weight_<asset>` (bps).
        """
        assets = [a.asset for a in run.config.assets]
        rows = []
        for r in run.results:
            row = {
                "timestamp": r.timestamp,
                "portfolio_value": str(from_wad(r.portfolio_value)),
                "buffer_value": str(from_wad(r.buffer_value)),
                "yield_harvested": str(from_wad(r.yield_harvested)),
                "management_fee": str(from_wad(r.management_fee)),
                "slippage_cost": str(from_wad(r.slippage_cost)),
                "gas_cost": str(from_wad(r.gas_cost)),
                "rebalanced": r.rebalanced,
            }
            for i, value in enumerate(r.asset_values):
                label = assets[i] if i < len(assets) else str(i)
                row[f"value_{label}"] = str(from_wad(value))
                row[f"weight_{label}"] = r.asset_weights[i]
            rows.append(row)
        return pd.DataFrame(rows)

    def export_csv(self, run: BacktestRun, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.results_frame(run).to_csv(path, index=False)
        logger.info(f"Exported {len(run.results)} results to {path}")
        return path

"""
Saved-scenario persistence for the franchise model dashboard.
Scenarios are named snapshots of an input set (and optionally its projection
records) owned by a user. Input/output blobs are stored as given.
"""
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("FRANCHISE_MODEL_DATA_DIR", BASE_DIR / "data"))
DEFAULT_FILENAME = "scenarios.json"


class ScenarioStoreError(Exception):
    """Raised when the scenario file cannot be read or written."""


class ScenarioNotFoundError(ScenarioStoreError):
    pass


class ScenarioValidationError(ScenarioStoreError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ScenarioStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DATA_DIR / DEFAULT_FILENAME

    # -- file access --

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading scenario file {self.path}: {e}")
            raise ScenarioStoreError(f"Could not read scenarios from {self.path}") from e
        if not isinstance(data, list):
            logger.error(f"Scenario file {self.path} does not hold a list")
            raise ScenarioStoreError(f"Scenario file {self.path} is malformed")
        return data

    def _save(self, scenarios: List[Dict[str, Any]]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(scenarios, fh, indent=2)
            tmp.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            tmp.unlink(missing_ok=True)
            logger.error(f"Error saving scenario file {self.path}: {e}")
            raise ScenarioStoreError(f"Could not save scenarios to {self.path}") from e

    @staticmethod
    def _require(user_id, name=None, check_name=False):
        if not user_id or not str(user_id).strip():
            raise ScenarioValidationError("A user id is required")
        if check_name and (name is None or not str(name).strip()):
            raise ScenarioValidationError("Scenario name cannot be blank")

    @staticmethod
    def _find(scenarios, user_id, scenario_id) -> int:
        for i, s in enumerate(scenarios):
            if s["id"] == scenario_id and s["user_id"] == user_id:
                return i
        logger.warning(f"Scenario {scenario_id} not found for user {user_id}")
        raise ScenarioNotFoundError(f"Scenario {scenario_id} not found")

    # -- operations --

    def create(self, user_id, name, inputs, outputs=None) -> Dict[str, Any]:
        self._require(user_id, name, check_name=True)
        scenarios = self._load()
        ts = _now()
        record = {"id": uuid.uuid4().hex, "user_id": user_id, "name": str(name).strip(),
                  "inputs": inputs, "outputs": outputs, "created_at": ts, "updated_at": ts}
        scenarios.append(record)
        self._save(scenarios)
        logger.info(f"Saved scenario '{record['name']}' ({record['id']}) for user {user_id}")
        return record

    def list(self, user_id) -> List[Dict[str, Any]]:
        self._require(user_id)
        own = [s for s in self._load() if s["user_id"] == user_id]
        return sorted(own, key=lambda s: s["created_at"], reverse=True)

    def get(self, user_id, scenario_id) -> Dict[str, Any]:
        self._require(user_id)
        scenarios = self._load()
        return scenarios[self._find(scenarios, user_id, scenario_id)]

    def update(self, user_id, scenario_id, name=None, inputs=None, outputs=None) -> Dict[str, Any]:
        self._require(user_id)
        if name is not None:
            self._require(user_id, name, check_name=True)
        scenarios = self._load()
        record = scenarios[self._find(scenarios, user_id, scenario_id)]
        if name is not None: record["name"] = str(name).strip()
        if inputs is not None: record["inputs"] = inputs
        if outputs is not None: record["outputs"] = outputs
        record["updated_at"] = _now()
        self._save(scenarios)
        logger.info(f"Updated scenario {scenario_id} for user {user_id}")
        return record

    def delete(self, user_id, scenario_id) -> None:
        self._require(user_id)
        scenarios = self._load()
        del scenarios[self._find(scenarios, user_id, scenario_id)]
        self._save(scenarios)
        logger.info(f"Deleted scenario {scenario_id} for user {user_id}")

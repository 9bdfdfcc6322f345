"""
Account/usage store seen by the pipeline.

AccountStore is the interface the orchestrator depends on: read the usage
record for an account, and atomically bump its video counter (touching
updated_at). JsonFileAccountStore is a single-node implementation backed by
one JSON file, written atomically (tmp file + rename). Every operation
re-reads the file while holding both a process-local lock and an exclusive
flock on a sidecar lock file, so separate processes sharing the file (two
CLI runs, say) serialize too. A production deployment swaps in a
document-store implementation with the same two methods; period rollover
belongs to that store, not here.
"""
from __future__ import annotations

import contextlib
import datetime
import fcntl
import json
import logging
import threading
from pathlib import Path
from typing import Iterator, Optional, Protocol

from schemas.render_request import PlanTier
from schemas.usage import PLAN_LIMITS, UsageRecord

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class AccountStore(Protocol):

    def get_usage(self, account_id: str) -> Optional[UsageRecord]:
        """Current usage for *account_id*, or None if the account is unknown."""
        ...

    def increment_usage(self, account_id: str) -> UsageRecord:
        """Atomically add one generated video and touch updated_at."""
        ...


class JsonFileAccountStore:
    """
    {account_id: UsageRecord} persisted as JSON.

    The file is the only source of truth: nothing is cached between calls,
    so increments from other instances or processes are never overwritten.
    """

    def __init__(self, path: "Path | str") -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._lock = threading.Lock()

    @contextlib.contextmanager
    def _locked(self) -> Iterator[dict[str, UsageRecord]]:
        """Exclusive access to the freshly loaded records."""
        with self._lock:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.lock_path, "a+") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    yield self._load()
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _load(self) -> dict[str, UsageRecord]:
        if not self.path.exists():
            return {}
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        return {
            account_id: UsageRecord.model_validate(record)
            for account_id, record in raw.items()
        }

    def _save(self, records: dict[str, UsageRecord]) -> None:
        payload = {k: v.model_dump(mode="json") for k, v in sorted(records.items())}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self.path)
        finally:
            tmp_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Pipeline interface
    # ------------------------------------------------------------------

    def get_usage(self, account_id: str) -> Optional[UsageRecord]:
        with self._locked() as records:
            return records.get(account_id)

    def increment_usage(self, account_id: str) -> UsageRecord:
        with self._locked() as records:
            record = self._require(records, account_id)
            updated = record.model_copy(update={
                "videos_generated_this_period": record.videos_generated_this_period + 1,
                "updated_at": _now_iso(),
            })
            records[account_id] = updated
            self._save(records)
        logger.info("account %s: %d/%d videos this period", account_id,
                    updated.videos_generated_this_period, updated.max_videos_per_period)
        return updated

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def create_account(self, account_id: str, plan: "PlanTier | str" = PlanTier.BASIC) -> UsageRecord:
        plan = PlanTier(plan)
        with self._locked() as records:
            if account_id in records:
                raise ValueError(f"account {account_id!r} already exists")
            record = UsageRecord.for_plan(plan).model_copy(update={"updated_at": _now_iso()})
            records[account_id] = record
            self._save(records)
        return record

    def update_plan(self, account_id: str, plan: "PlanTier | str") -> UsageRecord:
        """Switch plans: new period limit, subscription reactivated, counter kept."""
        plan = PlanTier(plan)
        with self._locked() as records:
            record = self._require(records, account_id).model_copy(update={
                "plan_tier": plan,
                "max_videos_per_period": PLAN_LIMITS[plan].max_videos_per_period,
                "active": True,
                "updated_at": _now_iso(),
            })
            records[account_id] = record
            self._save(records)
        return record

    def set_active(self, account_id: str, active: bool) -> UsageRecord:
        with self._locked() as records:
            record = self._require(records, account_id).model_copy(update={
                "active": active,
                "updated_at": _now_iso(),
            })
            records[account_id] = record
            self._save(records)
        return record

    @staticmethod
    def _require(records: dict[str, UsageRecord], account_id: str) -> UsageRecord:
        record = records.get(account_id)
        if record is None:
            raise KeyError(f"unknown account {account_id!r}")
        return record

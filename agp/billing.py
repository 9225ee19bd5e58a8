"""Token ledger: debits a company's balance once per completed job.

Balances have two buckets, purchased tokens and the monthly quota; a debit
draws from purchased tokens first.  Every debit is appended to a log keyed
by job id, so a repeated request for the same job returns the original
receipt instead of charging again.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from agp.config import get_settings
from agp.errors import BillingFailure

logger = logging.getLogger(__name__)


class Balance(BaseModel):
    monthly_quota: int = 0
    purchased: int = 0

    @property
    def total(self) -> int:
        return self.monthly_quota + self.purchased


class DebitReceipt(BaseModel):
    job_id: str
    company_id: str
    article_id: str | None = None
    tokens: int
    from_purchased: int = 0
    from_monthly: int = 0
    balance_after: int = 0
    debited_at: datetime
    idempotent: bool = False


class TokenLedger(Protocol):
    def debit(self, company_id: str, tokens: int, *, job_id: str, article_id: str | None = None) -> DebitReceipt: ...
    def balance(self, company_id: str) -> Balance | None: ...


class FileTokenLedger:
    """Balances in ``balances.json``, append-only debit log in ``debits.jsonl``."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "billing"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._balances_path = self._dir / "balances.json"
        self._log_path = self._dir / "debits.jsonl"
        self._lock = threading.Lock()

    def _load_balances(self) -> dict[str, Balance]:
        if not self._balances_path.exists():
            return {}
        with open(self._balances_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return {cid: Balance.model_validate(b) for cid, b in raw.items()}

    def _save_balances(self, balances: dict[str, Balance]) -> None:
        tmp = self._balances_path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({cid: b.model_dump() for cid, b in balances.items()}, f, indent=2)
        tmp.replace(self._balances_path)

    def _find_receipt(self, job_id: str) -> DebitReceipt | None:
        if not self._log_path.exists():
            return None
        with open(self._log_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                receipt = DebitReceipt.model_validate_json(line)
                if receipt.job_id == job_id:
                    return receipt
        return None

    def balance(self, company_id: str) -> Balance | None:
        with self._lock:
            return self._load_balances().get(company_id)

    def credit(self, company_id: str, *, purchased: int = 0, monthly_quota: int = 0) -> Balance:
        with self._lock:
            balances = self._load_balances()
            b = balances.setdefault(company_id, Balance())
            b.purchased += purchased
            b.monthly_quota += monthly_quota
            self._save_balances(balances)
            return b

    def debit(self, company_id: str, tokens: int, *, job_id: str, article_id: str | None = None) -> DebitReceipt:
        if tokens < 0:
            raise BillingFailure(f"cannot debit a negative amount ({tokens})")
        with self._lock:
            try:
                previous = self._find_receipt(job_id)
                if previous is not None:
                    logger.info("Job %s already debited at %s", job_id, previous.debited_at)
                    return previous.model_copy(update={"idempotent": True})

                balances = self._load_balances()
                b = balances.get(company_id)
                if tokens == 0:
                    # Nothing to charge; no balance row is needed and nothing is logged
                    return DebitReceipt(
                        job_id=job_id,
                        company_id=company_id,
                        article_id=article_id,
                        tokens=0,
                        balance_after=b.total if b else 0,
                        debited_at=datetime.utcnow(),
                    )
                if b is None:
                    raise BillingFailure(f"no token balance for company {company_id}")
                if b.total < tokens:
                    raise BillingFailure(
                        f"insufficient token balance for company {company_id}: need {tokens}, have {b.total}"
                    )
                from_purchased = min(tokens, b.purchased)
                from_monthly = tokens - from_purchased
                b.purchased -= from_purchased
                b.monthly_quota -= from_monthly

                receipt = DebitReceipt(
                    job_id=job_id,
                    company_id=company_id,
                    article_id=article_id,
                    tokens=tokens,
                    from_purchased=from_purchased,
                    from_monthly=from_monthly,
                    balance_after=b.total,
                    debited_at=datetime.utcnow(),
                )
                # Log first: a crash before the balance write leaves a receipt, never a double charge
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(receipt.model_dump_json() + "\n")
                self._save_balances(balances)
            except (OSError, ValueError) as e:
                raise BillingFailure(f"ledger write failed: {e}") from e
        logger.info("Debited %d tokens from %s for job %s", tokens, company_id, job_id)
        return receipt


_ledger: TokenLedger | None = None


def get_token_ledger() -> TokenLedger:
    global _ledger
    if _ledger is None:
        _ledger = FileTokenLedger(get_settings().data_dir)
    return _ledger

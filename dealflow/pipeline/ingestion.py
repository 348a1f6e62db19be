# dealflow/pipeline/ingestion.py
from dataclasses import dataclass, field
from typing import Iterable, List, Set

from ..models import Device
from ..schemas import ListingRecord
from ..utils import logger
from .normalizer import normalize


@dataclass
class IngestResult:
    added: List[Device] = field(default_factory=list)
    duplicates: int = 0
    failed: int = 0

    @property
    def counts(self):
        return {"added": len(self.added), "duplicates": self.duplicates, "failed": self.failed}


def ingest(listings: Iterable, existing_keys: Set[str]) -> IngestResult:
    """Normalize a batch of listings, skipping any whose dedupe key is known.

    `existing_keys` is the key set loaded once from the store; keys of newly
    accepted records are added to it as we go so duplicates inside the same
    batch are caught too. A listing that fails to normalize is logged and
    counted, never allowed to abort the batch.
    """
    result = IngestResult()
    keys = set(existing_keys)
    for raw in listings:
        try:
            listing = raw if isinstance(raw, ListingRecord) else ListingRecord.model_validate(raw)
            device = normalize(listing)
        except Exception as e:
            result.failed += 1
            logger.exception("Failed to normalize listing %r: %s", _describe(raw), e)
            continue
        if device.dedupe_key in keys:
            result.duplicates += 1
            logger.debug("Duplicate listing skipped: %s", device.dedupe_key)
            continue
        keys.add(device.dedupe_key)
        result.added.append(device)
    return result


def _describe(raw):
    if isinstance(raw, ListingRecord):
        return raw.listing_url or raw.title
    if isinstance(raw, dict):
        return raw.get("listing_url") or raw.get("title")
    return type(raw).__name__

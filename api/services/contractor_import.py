"""
Batch contractor import (replaces the scraper's write path).

Each item is validated as a ContractorCreate. Items whose trimmed,
case-folded name matches an existing contractor, or an earlier item of the
same batch, are skipped rather than duplicated.
"""

import logging

from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from schemas import ContractorCreate, ImportResult
from services import contractor_directory
from storage import DirectoryStorage

logger = logging.getLogger(__name__)


def _name_key(name: str) -> str:
    return " ".join(name.split()).casefold()


def validate_batch(items: list[dict | ContractorCreate]) -> list[ContractorCreate]:
    """Validate every item up front so a bad row rejects the whole batch."""
    validated: list[ContractorCreate] = []
    errors: list[dict] = []
    for index, item in enumerate(items):
        if isinstance(item, ContractorCreate):
            validated.append(item)
            continue
        try:
            validated.append(ContractorCreate.model_validate(item))
        except PydanticValidationError as e:
            errors.extend(
                {"loc": [index, *err["loc"]], "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            )
    if errors:
        raise ValidationError(f"{len(errors)} invalid field(s) in import batch", errors=errors)
    return validated


async def import_contractors(
    storage: DirectoryStorage, items: list[dict | ContractorCreate],
) -> ImportResult:
    batch = validate_batch(items)

    seen = {_name_key(c.name) for c in await storage.list_contractors()}
    added_ids: list[int] = []
    for data in batch:
        key = _name_key(data.name)
        if key in seen:
            logger.debug("Import skipped duplicate contractor %r", data.name)
            continue
        seen.add(key)
        contractor = await contractor_directory.create_contractor(storage, data)
        added_ids.append(contractor.id)

    result = ImportResult(
        added=len(added_ids),
        skipped=len(batch) - len(added_ids),
        total=len(batch),
        contractor_ids=added_ids,
    )
    logger.info("Contractor import: added=%s skipped=%s total=%s", result.added, result.skipped, result.total)
    return result

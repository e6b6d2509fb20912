"""
Copy BOM use case.

Creates a new revision from an existing BOM: same product with a new
version, or a similar product. Items get new ids; parent links are
remapped so the tree keeps its shape.

Workflow:
1. Validate the request and load the source BOM
2. Resolve the target product and make sure the version is free
3. Select items through the copy filter; children of skipped items are skipped
4. Remap ids, adjust unit costs, build and save the new BOM
5. Record the copy
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.costing import CostSummary, compute_cost_summary
from bomcore.domain.bom.cycles import CycleDetector
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.bom.filters import ItemFilter
from bomcore.domain.bom.repositories import (
    BOMHistoryRepository,
    BOMItemRepository,
    BOMRepository,
    ComponentCatalog,
)
from bomcore.domain.shared.events import BOMCopied
from bomcore.domain.shared.exceptions import (
    BusinessRuleViolationException,
    CircularReferenceException,
    EntityNotFoundException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import (
    AuditTrail,
    BOMId,
    BOMItemId,
    ComponentId,
    to_decimal,
)

from .product_graph import load_ancestor_graph

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
MIN_COST_ADJUSTMENT = Decimal("-100")
MAX_COST_ADJUSTMENT = Decimal("1000")


@dataclass(frozen=True)
class CopyBOMRequest:
    source_bom_id: BOMId
    new_version: str
    created_by: str
    # None copies into the source BOM's own product
    target_product_id: Optional[ComponentId] = None
    item_filter: ItemFilter = field(default_factory=lambda: ItemFilter(include_inactive=True))
    # Percent applied to every unit cost, -100..1000
    cost_adjustment_rate: Optional[Decimal] = None
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    update_effective_dates: bool = False
    description: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class CopyBOMResult:
    bom: BOM
    item_id_map: Dict[BOMItemId, BOMItemId]
    skipped_item_ids: List[BOMItemId]
    source_total_cost: Decimal
    statistics: CostSummary
    warnings: List[str] = field(default_factory=list)

    @property
    def copied_count(self) -> int:
        return len(self.item_id_map)

    @property
    def cost_difference(self) -> Decimal:
        return self.statistics.total_cost - self.source_total_cost


def _new_id() -> str:
    return uuid4().hex


class CopyBOMUseCase:

    def __init__(
        self,
        boms: BOMRepository,
        items: BOMItemRepository,
        catalog: ComponentCatalog,
        history: BOMHistoryRepository,
        settings: Optional[EngineSettings] = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.boms = boms
        self.items = items
        self.catalog = catalog
        self.history = history
        self.settings = settings or get_settings()
        self.id_factory = id_factory

    async def execute(self, request: CopyBOMRequest) -> CopyBOMResult:
        now = datetime.now()
        rate = self._validate(request, now)

        source = await self.boms.find_by_id(request.source_bom_id)
        if source is None:
            raise EntityNotFoundException("BOM", request.source_bom_id)

        product_id = request.target_product_id or source.product_id
        if request.target_product_id is not None:
            product = await self.catalog.find_by_id(product_id)
            if product is None:
                raise EntityNotFoundException("Component", product_id)

        existing = await self.boms.find_by_product_and_version(product_id, request.new_version)
        if existing is not None:
            raise BusinessRuleViolationException(
                "unique_version",
                f"Product {product_id} already has a BOM version '{request.new_version}'",
            )

        warnings = []
        if not source.is_currently_active():
            logger.warning("Copying from inactive BOM %s", source.id)
            warnings.append(f"Source BOM {source.id} is not active")

        new_bom_id = BOMId(self.id_factory())
        selected = {item.id for item in request.item_filter.apply(source.items)}
        id_map: Dict[BOMItemId, BOMItemId] = {}
        copied: List[BOMItem] = []
        skipped: List[BOMItemId] = []

        # Parents sit on lower levels, so they are mapped before their children
        for item in sorted(source.items, key=lambda candidate: candidate.level):
            parent_copied = item.parent_item_id is None or item.parent_item_id in id_map
            if item.id not in selected or not parent_copied:
                skipped.append(item.id)
                continue
            new_id = BOMItemId(self.id_factory())
            copied.append(item.replace(
                id=new_id,
                bom_id=new_bom_id,
                parent_item_id=id_map[item.parent_item_id] if item.parent_item_id else None,
                unit_cost=self._adjusted_cost(item.unit_cost, rate),
                effective_date=(
                    request.effective_date or now
                    if request.update_effective_dates else item.effective_date
                ),
                audit=AuditTrail.new(request.created_by, now),
            ))
            id_map[item.id] = new_id

        if not copied:
            raise BusinessRuleViolationException(
                "nothing_to_copy", f"No items of BOM {source.id} match the copy filter"
            )
        if product_id != source.product_id:
            await self._check_cycles(product_id, copied)

        bom = BOM.create(
            bom_id=new_bom_id,
            product_id=product_id,
            version=request.new_version,
            created_by=request.created_by,
            items=copied,
            effective_date=request.effective_date,
            expiry_date=request.expiry_date,
            description=request.description or f"Copied from version {source.version}",
            created_at=now,
        )
        bom = await self.boms.save(bom)

        if skipped:
            warnings.append(f"{len(skipped)} item(s) excluded by the copy filter")
        if rate:
            warnings.append(f"All unit costs adjusted by {rate}%")

        await self.history.record(BOMCopied(
            source_bom_id=str(source.id),
            target_bom_id=str(bom.id),
            copied_count=len(copied),
            skipped_count=len(skipped),
            user_id=request.created_by,
            reason=request.reason,
        ))
        logger.info(
            "Copied BOM %s to %s (product %s, version %s): %d item(s), %d skipped",
            source.id, bom.id, product_id, bom.version, len(copied), len(skipped),
        )
        return CopyBOMResult(
            bom=bom,
            item_id_map=id_map,
            skipped_item_ids=skipped,
            source_total_cost=source.total_cost(),
            statistics=compute_cost_summary(copied, self.settings.high_cost_threshold),
            warnings=warnings,
        )

    def _validate(self, request: CopyBOMRequest, now: datetime) -> Optional[Decimal]:
        if not request.created_by or not request.created_by.strip():
            raise ValidationException("Creator is required", "created_by", request.created_by)
        if not request.new_version or not request.new_version.strip():
            raise ValidationException("New version is required", "new_version", request.new_version)
        if request.effective_date is not None and request.effective_date > now:
            raise ValidationException(
                "Effective date cannot be in the future", "effective_date", request.effective_date
            )
        if request.cost_adjustment_rate is None:
            return None
        rate = to_decimal(request.cost_adjustment_rate, "cost_adjustment_rate")
        if not MIN_COST_ADJUSTMENT <= rate <= MAX_COST_ADJUSTMENT:
            raise ValidationException(
                "Cost adjustment must be between -100% and 1000%", "cost_adjustment_rate", rate
            )
        return rate

    @staticmethod
    def _adjusted_cost(unit_cost: Decimal, rate: Optional[Decimal]) -> Decimal:
        if not rate:
            return unit_cost
        return unit_cost * (1 + rate / HUNDRED)

    async def _check_cycles(self, product_id: ComponentId, items: List[BOMItem]) -> None:
        """A copied component may not already contain the new product."""
        detector = CycleDetector(max_depth=self.settings.cycle_max_depth)
        try:
            graph = await load_ancestor_graph(
                product_id, self.boms, self.items, self.settings.cycle_max_depth
            )
        except Exception as exc:
            logger.warning("Cycle check for copy into %s failed (%s); assuming a cycle", product_id, exc)
            raise CircularReferenceException(
                [product_id], f"Cycle check failed: {exc}"
            ) from exc
        for component_id in dict.fromkeys(item.component_id for item in items):
            result = detector.check_component_addition(product_id, component_id, graph)
            if result.has_circular_reference:
                raise CircularReferenceException(list(result.circular_path), result.message)

"""
Add BOM Item use case.

Workflow:
1. Load the BOM and the component; both must exist and be active
2. Derive level and sequence from the parent item
3. Reject self-reference and duplicates
4. Under the per-BOM lock, check the cross-BOM product graph for cycles
5. Save the updated BOM and record the change
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

from bomcore.config.settings import EngineSettings, get_settings
from bomcore.domain.bom.aggregates import BOM
from bomcore.domain.bom.cycles import CircularReferenceResult, CycleDetector
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.bom.repositories import (
    BOMHistoryRepository,
    BOMItemRepository,
    BOMRepository,
    ComponentCatalog,
)
from bomcore.domain.bom.tree import TreeNode, build_node
from bomcore.domain.shared.events import BOMItemAdded, CircularReferenceRejected
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
    ComponentType,
    Unit,
)

from .locks import BOMLockRegistry, default_lock_registry
from .product_graph import load_ancestor_graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddBOMItemRequest:
    bom_id: BOMId
    component_id: ComponentId
    quantity: Decimal
    unit: Unit
    unit_cost: Decimal
    component_type: ComponentType
    created_by: str
    parent_item_id: Optional[BOMItemId] = None
    scrap_rate: Decimal = Decimal("0")
    is_optional: bool = False
    position: Optional[str] = None
    process_step: Optional[str] = None
    remarks: Optional[str] = None
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    reason: Optional[str] = None


@dataclass
class AddBOMItemResult:
    item: BOMItem
    bom: BOM
    node: TreeNode
    message: str

    @property
    def total_cost(self) -> Decimal:
        return self.bom.total_cost()

    @property
    def total_items(self) -> int:
        return len(self.bom.items)


def _new_item_id() -> BOMItemId:
    return BOMItemId(uuid4().hex)


class AddBOMItemUseCase:

    def __init__(
        self,
        boms: BOMRepository,
        items: BOMItemRepository,
        catalog: ComponentCatalog,
        history: BOMHistoryRepository,
        locks: Optional[BOMLockRegistry] = None,
        settings: Optional[EngineSettings] = None,
        id_factory: Callable[[], BOMItemId] = _new_item_id,
    ):
        self.boms = boms
        self.items = items
        self.catalog = catalog
        self.history = history
        self.locks = locks or default_lock_registry()
        self.settings = settings or get_settings()
        self.id_factory = id_factory
        self.detector = CycleDetector(max_depth=self.settings.cycle_max_depth)

    async def execute(self, request: AddBOMItemRequest) -> AddBOMItemResult:
        if not request.created_by or not request.created_by.strip():
            raise ValidationException("Creator is required", "created_by", request.created_by)
        now = datetime.now()
        if request.effective_date is not None and request.effective_date > now:
            raise ValidationException(
                "Effective date cannot be in the future", "effective_date", request.effective_date
            )

        component = await self.catalog.find_by_id(request.component_id)
        if component is None:
            raise EntityNotFoundException("Component", request.component_id)
        if not component.is_active:
            raise BusinessRuleViolationException(
                "active_component",
                f"Inactive component '{component.code}' cannot be added to a BOM",
            )

        async with self.locks.hold(request.bom_id):
            bom = await self._load_active_bom(request.bom_id)

            if request.component_id == bom.product_id:
                raise CircularReferenceException(
                    [bom.product_id, request.component_id],
                    f"Product {bom.product_id} cannot be a component of itself",
                )

            parent = bom.get_item(request.parent_item_id) if request.parent_item_id else None
            item = BOMItem(
                id=self.id_factory(),
                bom_id=bom.id,
                component_id=request.component_id,
                parent_item_id=parent.id if parent else None,
                level=parent.level + 1 if parent else 0,
                sequence=bom.next_sequence(parent.id if parent else None),
                quantity=request.quantity,
                unit=request.unit,
                unit_cost=request.unit_cost,
                scrap_rate=request.scrap_rate,
                is_optional=request.is_optional,
                component_type=request.component_type,
                effective_date=request.effective_date or now,
                audit=AuditTrail.new(request.created_by, now),
                expiry_date=request.expiry_date,
                position=request.position,
                process_step=request.process_step,
                remarks=request.remarks,
            )
            # Duplicate check before the cycle check; it needs no lookups
            updated = bom.add_item(item, request.created_by)

            owner = parent.component_id if parent else bom.product_id
            result = await self._check_cycle(owner, request.component_id)
            if result.has_circular_reference:
                await self.history.record(CircularReferenceRejected(
                    bom_id=str(bom.id),
                    component_id=str(request.component_id),
                    message=result.message,
                ))
                raise CircularReferenceException(list(result.circular_path), result.message)

            updated = await self.boms.save(updated)

        await self.history.record(BOMItemAdded(
            bom_id=str(bom.id),
            item_id=str(item.id),
            component_id=str(item.component_id),
            parent_item_id=str(item.parent_item_id) if item.parent_item_id else None,
            quantity=str(item.quantity),
            user_id=request.created_by,
            reason=request.reason,
        ))
        logger.info(
            "Added component %s to BOM %s as item %s (level %d)",
            item.component_id, bom.id, item.id, item.level,
        )
        return AddBOMItemResult(
            item=item,
            bom=updated,
            node=build_node(item, component, as_of=now),
            message=f"Component '{component.name}' added",
        )

    async def _load_active_bom(self, bom_id: BOMId) -> BOM:
        bom = await self.boms.find_by_id(bom_id)
        if bom is None:
            raise EntityNotFoundException("BOM", bom_id)
        if not bom.is_currently_active():
            raise BusinessRuleViolationException(
                "active_bom", f"Components cannot be added to inactive BOM '{bom_id}'"
            )
        return bom

    async def _check_cycle(
        self, owner_id: ComponentId, component_id: ComponentId
    ) -> CircularReferenceResult:
        """Transitive cycle check; anything that prevents an answer counts as a cycle."""

        async def run() -> CircularReferenceResult:
            graph = await load_ancestor_graph(
                owner_id, self.boms, self.items, self.settings.cycle_max_depth
            )
            return self.detector.check_component_addition(owner_id, component_id, graph)

        try:
            return await asyncio.wait_for(run(), timeout=self.settings.cycle_check_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Cycle check for %s under %s timed out after %ss; assuming a cycle",
                component_id, owner_id, self.settings.cycle_check_timeout,
            )
            return CircularReferenceResult(
                True, (owner_id, component_id), None, "Cycle check timed out"
            )
        except Exception as exc:
            logger.warning(
                "Cycle check for %s under %s failed (%s); assuming a cycle",
                component_id, owner_id, exc,
            )
            return CircularReferenceResult(
                True, (owner_id, component_id), None, f"Cycle check failed: {exc}"
            )

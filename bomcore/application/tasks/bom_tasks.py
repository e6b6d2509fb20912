"""
BOM Tasks.

Celery tasks for BOM-related operations.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from celery import shared_task

from bomcore.application.bom.compare import CompareBOMRequest, CompareBOMUseCase
from bomcore.config.settings import get_settings
from bomcore.domain.bom.comparison import CompareOptions
from bomcore.domain.bom.entities import BOMItem
from bomcore.domain.shared.exceptions import DomainException
from bomcore.domain.shared.value_objects import BOMId, ComponentId
from bomcore.infrastructure.registry import get_registry

logger = logging.getLogger(__name__)


def find_structure_issues(
    bom_id: BOMId,
    product_id: ComponentId,
    items: Iterable[BOMItem],
) -> List[Dict[str, str]]:
    """
    Check a flat item list for structural problems.

    Checks:
    - No item references the BOM's own product
    - All parent references resolve inside the same BOM
    - Each item sits one level below its parent
    - No parent chain loops, and no component repeats along a chain
    """
    items = list(items)
    by_id = {item.id: item for item in items}
    issues = []

    for item in items:
        if item.component_id == product_id:
            issues.append({
                'type': 'self_reference',
                'item_id': str(item.id),
                'message': f'Item {item.id} references the BOM product {product_id}',
            })

        parent = by_id.get(item.parent_item_id) if item.parent_item_id else None
        if item.parent_item_id is not None and (parent is None or parent.bom_id != bom_id):
            issues.append({
                'type': 'invalid_parent',
                'item_id': str(item.id),
                'message': f'Parent item {item.parent_item_id} does not belong to BOM {bom_id}',
            })
        elif parent is not None and item.level != parent.level + 1:
            issues.append({
                'type': 'incorrect_level',
                'item_id': str(item.id),
                'message': f'Level mismatch: expected {parent.level + 1}, got {item.level}',
            })

        # Walk up the parent chain
        visited = {item.id}
        components = {item.component_id}
        current = parent
        while current is not None:
            if current.id in visited:
                issues.append({
                    'type': 'circular_reference',
                    'item_id': str(item.id),
                    'message': f'Parent chain of item {item.id} loops back on itself',
                })
                break
            if current.component_id in components:
                issues.append({
                    'type': 'circular_reference',
                    'item_id': str(item.id),
                    'message': (
                        f'Component {current.component_id} appears more than once '
                        f'above item {item.id}'
                    ),
                })
                break
            visited.add(current.id)
            components.add(current.component_id)
            current = by_id.get(current.parent_item_id) if current.parent_item_id else None

    return issues


@shared_task(bind=True, max_retries=3)
def validate_bom_structure(self, bom_id: str):
    """
    Validate BOM structure integrity.
    """
    registry = get_registry()

    try:
        bom = asyncio.run(registry.boms.find_by_id(BOMId(bom_id)))
        if bom is None:
            logger.error(f"BOM {bom_id} not found")
            return {'error': 'BOM not found'}

        issues = find_structure_issues(bom.id, bom.product_id, bom.items)

        logger.info(f"BOM {bom_id} validation: {len(issues)} issues found")

        return {
            'bom_id': bom_id,
            'version': bom.version,
            'items_count': len(bom.items),
            'valid': len(issues) == 0,
            'issues': issues,
        }

    except DomainException as e:
        logger.error(f"BOM {bom_id} could not be validated: {e.message}")
        return e.to_dict()
    except Exception as e:
        logger.error(f"Error validating BOM {bom_id}: {e}")
        raise self.retry(exc=e, countdown=60)


@shared_task(bind=True, max_retries=3)
def compare_bom_revisions(
    self,
    source_bom_id: str,
    target_bom_id: str,
    options: Optional[Dict[str, Any]] = None,
    requested_by: Optional[str] = None,
):
    """
    Compare two BOM revisions and return the serialised result.
    """
    registry = get_registry()
    settings = get_settings()
    use_case = CompareBOMUseCase(registry.boms, registry.catalog, registry.history, settings)

    try:
        compare_options = CompareOptions.from_dict(options) if options else None
        comparison = asyncio.run(use_case.execute(CompareBOMRequest(
            source_bom_id=BOMId(source_bom_id),
            target_bom_id=BOMId(target_bom_id),
            options=compare_options,
            requested_by=requested_by,
        )))

        result = comparison.to_dict(settings.money_places)
        result['source_bom_id'] = source_bom_id
        result['target_bom_id'] = target_bom_id

        logger.info(
            f"Compared BOM {source_bom_id} with {target_bom_id}: "
            f"{comparison.statistics.total_changes} changes"
        )
        return result

    except DomainException as e:
        logger.error(f"Cannot compare BOM {source_bom_id} with {target_bom_id}: {e.message}")
        return e.to_dict()
    except Exception as e:
        logger.error(f"Error comparing BOM {source_bom_id} with {target_bom_id}: {e}")
        raise self.retry(exc=e, countdown=60)

"""
Recipe explosion: turns menu item sales into ingredient quantities.

Mathematical Model:
ingredient_usage_j = sum_i (sold_i x qty_ij)

Where:
- sold_i = units of menu item i sold (or expected to sell)
- qty_ij = quantity of ingredient j in the recipe for item i

Used for theoretical usage (actual sales), the menu-driven forecast
(expected sales) and the "which dishes use this" lookup for waste
recommendations.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from stockpulse.core.timeutil import usage_date
from stockpulse.stores.ledger import LedgerStore, MenuRecipe, SaleLine


@dataclass
class IngredientRequirement:
    """Ingredient quantity implied by menu item sales."""
    ingredient_id: UUID
    quantity: float
    unit: str
    menu_items: List[str] = field(default_factory=list)


@dataclass
class ExplosionResult:
    requirements: Dict[UUID, IngredientRequirement]
    items_processed: int
    items_skipped: int  # Sold menu items without a recipe


def average_daily_sales(
    sales: Iterable[SaleLine],
    timezone: str = "UTC",
    max_days: int = 30,
) -> Dict[UUID, float]:
    """
    Average units sold per selling day, per menu item.

    Days without any sale of an item are not counted as selling days.
    """
    totals: Dict[UUID, float] = {}
    days: Dict[UUID, Set[date]] = {}

    for line in sales:
        totals[line.menu_item_id] = totals.get(line.menu_item_id, 0.0) + line.quantity_sold
        days.setdefault(line.menu_item_id, set()).add(usage_date(line.timestamp, timezone))

    return {
        menu_item_id: total / min(max_days, len(days[menu_item_id]))
        for menu_item_id, total in totals.items()
    }


class RecipeExplosionService:
    """
    Explodes menu item quantities into ingredient requirements.

    Recipes are read once per service instance.
    """

    def __init__(self, ledger: LedgerStore, recipes: Optional[List[MenuRecipe]] = None):
        self.ledger = ledger
        self._recipes = recipes

    @property
    def recipes(self) -> List[MenuRecipe]:
        if self._recipes is None:
            self._recipes = self.ledger.menu_recipes()
        return self._recipes

    def explode(self, quantities: Dict[UUID, float]) -> ExplosionResult:
        """
        Convert menu item quantities into ingredient requirements.

        Args:
            quantities: menu_item_id -> units sold or expected

        Returns:
            ExplosionResult keyed by ingredient id
        """
        by_item = {r.menu_item_id: r for r in self.recipes}
        requirements: Dict[UUID, IngredientRequirement] = {}
        items_processed = 0
        items_skipped = 0

        for menu_item_id, qty in quantities.items():
            recipe = by_item.get(menu_item_id)
            if not recipe or not recipe.ingredients:
                items_skipped += 1
                continue

            items_processed += 1
            for line in recipe.ingredients:
                req = requirements.get(line.ingredient_id)
                if req is None:
                    req = IngredientRequirement(ingredient_id=line.ingredient_id, quantity=0.0, unit=line.unit)
                    requirements[line.ingredient_id] = req
                req.quantity += line.qty_per_sale * qty
                if recipe.name not in req.menu_items:
                    req.menu_items.append(recipe.name)

        return ExplosionResult(
            requirements=requirements,
            items_processed=items_processed,
            items_skipped=items_skipped,
        )

    def theoretical_usage(self, since: datetime) -> Dict[UUID, float]:
        """Ingredient usage implied by completed sales since ``since``."""
        sold: Dict[UUID, float] = {}
        for line in self.ledger.completed_sales(since):
            sold[line.menu_item_id] = sold.get(line.menu_item_id, 0.0) + line.quantity_sold

        result = self.explode(sold)
        return {ingredient_id: req.quantity for ingredient_id, req in result.requirements.items()}

    def menu_items_by_ingredient(self) -> Dict[UUID, List[str]]:
        """Names of the menu items whose recipe uses each ingredient."""
        mapping: Dict[UUID, List[str]] = {}
        for recipe in self.recipes:
            for line in recipe.ingredients:
                names = mapping.setdefault(line.ingredient_id, [])
                if recipe.name not in names:
                    names.append(recipe.name)
        return mapping

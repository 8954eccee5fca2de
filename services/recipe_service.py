"""
Recipe service.

A product has at most one active recipe. Creating a new one deactivates
the previous recipe. Deleting a recipe only deactivates it; recipes are
never hard-deleted.
"""

from typing import Optional
import structlog

from repositories import FulfillmentRepository, get_repository
from models.product import Recipe, RecipeCreate, RecipeUpdate
from exceptions import (
    MaterialDefinitionNotFoundError,
    ProductNotFoundError,
    RecipeNotFoundError,
    RecipeRequiredError,
)

logger = structlog.get_logger(__name__)


class RecipeService:
    """Bill-of-materials management."""

    def __init__(self, repository: Optional[FulfillmentRepository] = None):
        self.repository = repository or get_repository()

    def get_active_recipe(self, product_id: str) -> Recipe:
        """
        Raises:
            ProductNotFoundError: If the product doesn't exist
            RecipeRequiredError: If the product has no active recipe
        """
        if self.repository.get_product(product_id) is None:
            raise ProductNotFoundError(product_id)
        recipe = self.repository.get_active_recipe(product_id)
        if recipe is None:
            raise RecipeRequiredError(product_id)
        return recipe

    def create_recipe(self, data: RecipeCreate) -> Recipe:
        """
        Create the active recipe for a product.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            MaterialDefinitionNotFoundError: If a material doesn't exist
        """
        if self.repository.get_product(data.product_id) is None:
            raise ProductNotFoundError(data.product_id)
        self._check_materials(data.materials)

        previous = self.repository.get_active_recipe(data.product_id)
        recipe = self.repository.create_recipe(data)

        logger.info(
            "recipe_created",
            recipe_id=recipe.id,
            product_id=data.product_id,
            materials=len(recipe.materials),
            replaced_recipe_id=previous.id if previous else None
        )
        return recipe

    def _check_materials(self, materials) -> None:
        for item in materials:
            if self.repository.get_material_definition(item.material_definition_id) is None:
                raise MaterialDefinitionNotFoundError(item.material_definition_id)

    def update_recipe(self, recipe_id: str, data: RecipeUpdate) -> Recipe:
        """
        Rename a recipe and replace its materials in place.

        The recipe keeps its id and active flag.

        Raises:
            RecipeNotFoundError: If the recipe doesn't exist
            MaterialDefinitionNotFoundError: If a material doesn't exist
        """
        if self.repository.get_recipe(recipe_id) is None:
            raise RecipeNotFoundError(recipe_id)
        self._check_materials(data.materials)

        recipe = self.repository.update_recipe(recipe_id, data)
        if recipe is None:
            raise RecipeNotFoundError(recipe_id)

        logger.info("recipe_updated", recipe_id=recipe_id, materials=len(recipe.materials))
        return recipe

    def delete_recipe(self, recipe_id: str) -> Recipe:
        """
        Soft delete: the recipe is deactivated and kept for history.

        Raises:
            RecipeNotFoundError: If the recipe doesn't exist
        """
        recipe = self.repository.deactivate_recipe(recipe_id)
        if recipe is None:
            raise RecipeNotFoundError(recipe_id)

        logger.info("recipe_deactivated", recipe_id=recipe_id, product_id=recipe.product_id)
        return recipe


# Singleton instance
_recipe_service: Optional[RecipeService] = None


def get_recipe_service() -> RecipeService:
    """Get or create recipe service instance."""
    global _recipe_service
    if _recipe_service is None:
        _recipe_service = RecipeService()
    return _recipe_service

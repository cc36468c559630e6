import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ValidationError

from src.constants import Category, REFLECTION_KEYS

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[2] / "assets" / "reflection_catalog.yml"


class CatalogValidationError(ValueError):
    """Raised when the catalog does not match the fixed categories or question keys."""
    pass


class CategoryInfo(BaseModel):
    id: Category
    label: str
    emoji: str


class QuestionInfo(BaseModel):
    key: str
    label: str


class ReflectionCatalog(BaseModel):
    version: str
    categories: List[CategoryInfo]
    questions: List[QuestionInfo]

    def category_label(self, category: Category) -> str:
        for info in self.categories:
            if info.id == category:
                return info.label
        return category.value


def load_catalog_data(data: Dict[str, Any]) -> ReflectionCatalog:
    """
    Validates raw catalog data and checks it against the closed category set
    and the fixed, ordered reflection keys.
    """
    catalog = ReflectionCatalog.model_validate(data)

    category_ids = [info.id for info in catalog.categories]
    if len(set(category_ids)) != len(category_ids):
        raise CatalogValidationError("Duplicate category ID in catalog")
    missing = [c.value for c in Category if c not in category_ids]
    if missing:
        raise CatalogValidationError(f"Catalog is missing categories: {missing}")

    question_keys = tuple(q.key for q in catalog.questions)
    if question_keys != REFLECTION_KEYS:
        raise CatalogValidationError(
            f"Catalog questions must be exactly {list(REFLECTION_KEYS)} in order, got {list(question_keys)}"
        )
    return catalog


def load_catalog_from_file(file_path: str) -> ReflectionCatalog:
    """Loads the reflection catalog from a YAML file and validates it."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Reflection catalog not found at {file_path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file {file_path}: {e}")

    try:
        catalog = load_catalog_data(raw or {})
    except ValidationError as e:
        raise ValueError(f"Error validating catalog file {file_path}: {e}")
    logger.info(f"Loaded reflection catalog v{catalog.version} from {file_path}")
    return catalog


@lru_cache(maxsize=4)
def get_catalog(file_path: Optional[str] = None) -> ReflectionCatalog:
    return load_catalog_from_file(file_path or str(DEFAULT_CATALOG_PATH))

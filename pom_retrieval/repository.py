"""Loading page object models from JSON files on disk."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Protocol

import aiofiles

from pom_retrieval.exceptions import ModelLoadError, ModelNotFoundError
from pom_retrieval.models import PageObjectModel

logger = logging.getLogger(__name__)


class ModelRepository(Protocol):
    """Authoritative source of page object models for indexing."""

    async def get_all_models(self) -> List[PageObjectModel]:
        """Return every available model."""


class JsonModelLoader:
    """Parse a single page object model JSON file.

    Invalid files are skipped with a warning unless ``strict`` is set, in
    which case :class:`ModelLoadError` is raised.
    """

    def __init__(self, *, schema_suffix: str = ".schema.json", strict: bool = False) -> None:
        self.schema_suffix = schema_suffix
        self.strict = strict

    async def load_model(self, path: Path | str) -> Optional[PageObjectModel]:
        path = Path(path)
        if path.name.endswith(self.schema_suffix):
            logger.debug("Skipping schema file: %s", path)
            return None
        if not path.is_file():
            logger.warning("File does not exist: %s", path)
            return None

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as handle:
                raw = await handle.read()
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("Model file must contain a JSON object")
            model = PageObjectModel.from_dict(data)
        except (OSError, ValueError) as exc:
            if self.strict:
                raise ModelLoadError(f"Failed to load model from {path}: {exc}") from exc
            logger.warning("Skipping invalid model file %s: %s", path, exc)
            return None

        logger.debug("Loaded model '%s' from %s", model.name, path)
        return model


class FileSystemModelRepository:
    """Serve page object models found in a directory of JSON files.

    Files are read once, on first access, and kept in memory until
    :meth:`reload` is called.
    """

    def __init__(self, models_dir: Path | str, *, loader: Optional[JsonModelLoader] = None) -> None:
        self.models_dir = Path(models_dir)
        self.loader = loader or JsonModelLoader()
        self._models: Optional[List[PageObjectModel]] = None
        self._lock = asyncio.Lock()

    async def get_all_models(self) -> List[PageObjectModel]:
        if self._models is None:
            async with self._lock:
                if self._models is None:
                    self._models = await self._load_models()
        return list(self._models)

    async def get_model_by_name(self, name: str) -> Optional[PageObjectModel]:
        if not name or not name.strip():
            logger.warning("Model name is null or empty")
            return None
        wanted = name.lower()
        for model in await self.get_all_models():
            if model.name.lower() == wanted:
                return model
        return None

    async def require_model(self, name: str) -> PageObjectModel:
        model = await self.get_model_by_name(name)
        if model is None:
            raise ModelNotFoundError(f"No page object model named '{name}'")
        return model

    async def model_exists(self, name: str) -> bool:
        return await self.get_model_by_name(name) is not None

    async def get_model_count(self) -> int:
        return len(await self.get_all_models())

    async def reload(self) -> List[PageObjectModel]:
        async with self._lock:
            self._models = await self._load_models()
        return list(self._models)

    async def _load_models(self) -> List[PageObjectModel]:
        if not self.models_dir.is_dir():
            logger.warning("Models directory does not exist: %s", self.models_dir)
            return []

        models: List[PageObjectModel] = []
        for path in sorted(self.models_dir.rglob("*.json")):
            model = await self.loader.load_model(path)
            if model is not None:
                models.append(model)

        logger.info("Loaded %d page object models from %s", len(models), self.models_dir)
        return models


__all__ = ["FileSystemModelRepository", "JsonModelLoader", "ModelRepository"]

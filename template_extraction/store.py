# SPDX-License-Identifier: AGPL-3.0-only

"""
Template storage.

The pipeline never touches storage; the HTTP layer resolves templates through a
``TemplateStore`` and hands plain ``Template`` objects to the pipeline. The
in-memory store is process-local and not durable.
"""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import TemplateNotFoundError, TemplateValidationError
from .models import Template

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_template_id() -> str:
    return f"template_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _build_template(data: Dict[str, Any]) -> Template:
    try:
        return Template.model_validate(data)
    except ValidationError as e:
        raise TemplateValidationError("Invalid template format", details={"errors": e.errors(include_url=False, include_context=False)},
                                      error=e) from e


class TemplateStore(ABC):
    """Keyed template storage."""

    @abstractmethod
    def get(self, template_id: str) -> Optional[Template]:
        ...

    @abstractmethod
    def put(self, template: Template) -> Template:
        ...

    @abstractmethod
    def delete(self, template_id: str) -> bool:
        ...

    @abstractmethod
    def list(self, category: Optional[str] = None) -> List[Template]:
        ...

    def require(self, template_id: str) -> Template:
        template = self.get(template_id)
        if template is None:
            raise TemplateNotFoundError("Template not found", details={"template_id": template_id})
        return template

    def create(self, data: Dict[str, Any]) -> Template:
        """Store a new template under a fresh id with creation timestamps."""
        now = _now()
        payload = {**data, "id": new_template_id(), "createdAt": now, "updatedAt": now}
        payload.pop("created_at", None)
        payload.pop("updated_at", None)
        return self.put(_build_template(payload))

    def import_template(self, data: Dict[str, Any]) -> Template:
        """Import an exported template; it must carry a name and a sections list."""
        if not isinstance(data, dict) or not data.get("name") or not isinstance(data.get("sections"), list):
            raise TemplateValidationError("Invalid template format")
        return self.create(data)

    def update(self, template_id: str, updates: Dict[str, Any]) -> Template:
        """Shallow-merge updates into a stored template and refresh ``updatedAt``."""
        current = self.require(template_id)
        merged = current.model_dump(by_alias=True)
        merged.update({k: v for k, v in updates.items() if k not in ("id", "createdAt", "created_at")})
        merged.pop("updated_at", None)
        merged["updatedAt"] = _now()
        return self.put(_build_template(merged))


class InMemoryTemplateStore(TemplateStore):
    """Thread-safe, process-local store."""

    def __init__(self):
        self._templates: Dict[str, Template] = {}
        self._lock = threading.Lock()

    def get(self, template_id: str) -> Optional[Template]:
        with self._lock:
            return self._templates.get(template_id)

    def put(self, template: Template) -> Template:
        with self._lock:
            self._templates[template.id] = template
        logger.debug("Stored template %s", template.id)
        return template

    def delete(self, template_id: str) -> bool:
        with self._lock:
            return self._templates.pop(template_id, None) is not None

    def list(self, category: Optional[str] = None) -> List[Template]:
        with self._lock:
            templates = list(self._templates.values())
        if category:
            templates = [t for t in templates if t.category == category]
        return templates

    def clear(self) -> None:
        with self._lock:
            self._templates.clear()

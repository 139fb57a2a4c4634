from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Set

from pydantic import TypeAdapter

from invitation_service.errors import TemplateNotFound
from invitation_service.media.text import referenced_fields
from invitation_service.models.domain import Template

_TEMPLATE_LIST = TypeAdapter(List[Template])
BUILTIN_TEMPLATES = Path(__file__).with_name("builtin_templates.json")


class TemplateCatalog:
    """Read-only store of template definitions shared by every job.

    ``get`` hands out deep copies, so a running job keeps the snapshot it was
    submitted with.
    """

    def __init__(self, templates: Iterable[Template]) -> None:
        self._templates: Dict[str, Template] = {}
        for template in templates:
            if template.id in self._templates:
                raise ValueError(f"duplicate template id: {template.id}")
            self._templates[template.id] = template

    @classmethod
    def from_file(cls, path: Path) -> "TemplateCatalog":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(_TEMPLATE_LIST.validate_python(data))

    @classmethod
    def builtin(cls) -> "TemplateCatalog":
        return cls.from_file(BUILTIN_TEMPLATES)

    def get(self, template_id: str) -> Template:
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template.model_copy(deep=True)

    def list(self) -> List[Template]:
        return [template.model_copy(deep=True) for template in self._templates.values()]

    def list_by_category(self, category: str) -> List[Template]:
        wanted = category.strip().lower()
        return [template for template in self.list() if template.category.lower() == wanted]


def required_fields(template: Template) -> Set[str]:
    fields: Set[str] = set()
    for scene in template.scenes:
        for element in scene.text_elements:
            fields |= referenced_fields(element.content)
    return fields

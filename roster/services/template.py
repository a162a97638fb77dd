"""Task template management service."""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as SchemaError

from roster.db.storage import KeyValueStorage
from .errors import ValidationError
from .records import TaskTemplate, load_record_map

logger = logging.getLogger(__name__)

TEMPLATES_KEY = "taskTemplates"


class TemplateService:
    """Named, reusable task defaults. Templates have no owner."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def get_templates(self) -> Dict[str, TaskTemplate]:
        """Get all saved templates keyed by name."""
        return load_record_map(self.storage.load(TEMPLATES_KEY), TaskTemplate, "template")

    def get_template(self, name: str) -> Optional[TaskTemplate]:
        return self.get_templates().get(name)

    def save_template(self, name: str, template: Union[TaskTemplate, Dict[str, Any]]) -> bool:
        """
        Save a template under ``name``, replacing any existing one.

        Returns:
            False if the name is blank (nothing is stored), True otherwise

        Raises:
            ValidationError: if a dict template has no title or a bad duration
        """
        if not name or not name.strip():
            logger.warning("Rejected template without a name")
            return False

        if not isinstance(template, TaskTemplate):
            try:
                template = TaskTemplate.model_validate(template)
            except SchemaError as e:
                raise ValidationError(f"Invalid template: {e.errors()[0]['msg']}") from e

        with self.storage.lock:
            templates = self.get_templates()
            replaced = name in templates
            templates[name] = template
            self._save(templates)

        logger.info(f"{'Replaced' if replaced else 'Saved'} template '{name}'")
        return True

    def delete_template(self, name: str) -> None:
        """Delete a template; does nothing if it does not exist."""
        with self.storage.lock:
            templates = self.get_templates()
            if templates.pop(name, None) is None:
                return
            self._save(templates)
        logger.info(f"Deleted template '{name}'")

    def _save(self, templates: Dict[str, TaskTemplate]):
        self.storage.save(TEMPLATES_KEY, {name: t.to_storage() for name, t in templates.items()})

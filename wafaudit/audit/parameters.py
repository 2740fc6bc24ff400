"""Rule parameters loaded from an external JSON file.

The file maps a rule's test_name to its parameters::

    {
        "lb_backend_redundancy": {"min_backend_instances": 2},
        "mg_naming_convention": {"pattern": "^(mg|MG)-[a-z0-9-]+$"}
    }

A file that cannot be read or parsed invalidates the whole store; rules
that ask for parameters then fail configuration and drop out of the run.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import RootModel, ValidationError

from wafaudit.audit.base import RuleConfigurationError

logger = logging.getLogger(__name__)


class RuleParameterFile(RootModel[dict[str, dict[str, Any]]]):
    """Schema of the parameter file: test_name -> parameter mapping."""


class RuleParameterStore:
    """Per-rule parameters with a sticky load error."""

    def __init__(
        self,
        parameters: dict[str, dict[str, Any]] | None = None,
        source: str | None = None,
        error: str | None = None,
    ):
        self._parameters = parameters or {}
        self.source = source
        self.error = error

    @classmethod
    def load(cls, path: str | Path | None) -> "RuleParameterStore":
        """Load parameters from a JSON file; no path means built-in defaults."""
        if not path:
            return cls()

        source = str(path)
        try:
            content = Path(path).read_text(encoding="utf-8")
            parsed = RuleParameterFile.model_validate(json.loads(content))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Rule parameter file {source} is unusable: {e}")
            return cls(source=source, error=f"{type(e).__name__}: {e}")

        logger.info(f"Loaded parameters for {len(parsed.root)} rules from {source}")
        return cls(parameters=parsed.root, source=source)

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def for_rule(self, test_name: str) -> dict[str, Any]:
        """Return the parameters for one rule.

        Raises:
            RuleConfigurationError: If the parameter file failed to load
        """
        if self.error:
            raise RuleConfigurationError(
                f"Parameters for {test_name} unavailable, {self.source} is malformed: {self.error}"
            )
        return dict(self._parameters.get(test_name, {}))

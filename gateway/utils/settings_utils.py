import os
from pathlib import Path
from typing import Any

import structlog
from pydantic.fields import FieldInfo
from pydantic_settings import PydanticBaseSettingsSource

logger = structlog.stdlib.get_logger(__name__)


class DockerSecretsSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source that reads values from mounted secret files.

    For any setting, if an environment variable <SETTING_NAME>_FILE exists,
    the value is read from that file path. Dict and list settings (for example
    REGISTRY_ALIASES) are expected to hold JSON.

    Example:
        If UA_FILE=/run/secrets/gateway_blocked_agents
        Then UA will be read from that file
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        file_path = os.getenv(f"{field_name}_FILE")
        if not file_path:
            return None, field_name, False

        path = Path(file_path)
        if not path.exists():
            logger.warning(
                "Secret file does not exist", setting=field_name, path=file_path
            )
            return None, field_name, False

        try:
            secret_value = path.read_text().strip()
        except OSError as e:
            logger.warning(
                "Could not read secret file",
                setting=field_name,
                path=file_path,
                error=str(e),
            )
            return None, field_name, False

        return secret_value, field_name, self.field_is_complex(field)

    def prepare_field_value(
        self, field_name: str, field: FieldInfo, value: Any, value_is_complex: bool
    ) -> Any:
        if value is not None and value_is_complex:
            return self.decode_complex_value(field_name, field, value)
        return value

    def __call__(self) -> dict[str, Any]:
        values: dict[str, Any] = {}

        for field_name, field in self.settings_cls.model_fields.items():
            raw_value, field_key, value_is_complex = self.get_field_value(
                field, field_name
            )
            value = self.prepare_field_value(
                field_name, field, raw_value, value_is_complex
            )
            if value is not None:
                values[field_key] = value

        return values

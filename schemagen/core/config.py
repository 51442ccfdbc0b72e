"""
Configuration management for schema generation.

Handles loading and merging configuration from JSON files and the
environment, providing defaults and validation for generator settings.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

# Environment switch for extra schema compiler arguments
ADDITIONAL_COMPILER_ARGS_ENV = "SCHEMAGEN_ADDITIONAL_COMPILER_ARGS"


class ConfigError(Exception):
    """Exception raised for configuration-related errors."""
    pass


@dataclass
class GeneratorConfig:
    """Configuration of a schema generation pass."""

    # Output settings
    schema_output_dir: str = "schema/unreal/generated"
    database_path: str = "schema/SchemaDatabase.json"
    package_prefix: str = "unreal"

    # Schema compiler
    compiler_executable: str = "schema_compiler"
    compiler_schema_paths: List[str] = field(
        default_factory=lambda: ["schema", "build/dependencies/schema/standard_library"]
    )
    compiled_schema_dir: str = "build/assembly/schema"
    additional_compiler_args: str = ""
    skip_compile: bool = False

    # Generation behavior
    batch_size: int = 100
    dynamic_subobject_slots: int = 3
    directories_to_never_cook: List[str] = field(default_factory=list)

    # Custom settings (project-specific passthrough)
    custom: Dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Manages configuration loading and merging."""

    def get_config(self, custom_config: Optional[Dict[str, Any]] = None,
                   config_file: Optional[Union[str, Path]] = None,
                   environ: Optional[Dict[str, str]] = None) -> GeneratorConfig:
        """
        Get complete configuration.

        Precedence, lowest first: defaults, config file, environment,
        custom overrides.

        Args:
            custom_config: Explicit configuration overrides
            config_file: Path to JSON configuration file
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Merged configuration
        """
        base_config: Dict[str, Any] = {}

        if config_file:
            base_config.update(self._load_config_file(config_file))

        env = os.environ if environ is None else environ
        env_args = env.get(ADDITIONAL_COMPILER_ARGS_ENV)
        if env_args:
            base_config["additional_compiler_args"] = env_args.strip().strip('"')

        if custom_config:
            base_config.update({k: v for k, v in custom_config.items() if v is not None})

        return self._dict_to_config(base_config)

    def _load_config_file(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """Load configuration from JSON file."""
        path = Path(config_path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        if not path.suffix.lower() == '.json':
            raise ConfigError(f"Configuration file must be JSON: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in configuration file {path}: {str(e)}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load configuration file {path}: {str(e)}") from e

        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file must contain a JSON object: {path}")

        return config

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> GeneratorConfig:
        """Convert dictionary to GeneratorConfig instance."""
        known_fields = {f.name for f in fields(GeneratorConfig)}

        config_args = {}
        custom_args = {}

        for key, value in config_dict.items():
            if key in known_fields:
                config_args[key] = value
            else:
                custom_args[key] = value

        # Unknown keys are kept for project-specific tooling
        if custom_args:
            existing_custom = dict(config_args.get('custom', {}))
            existing_custom.update(custom_args)
            config_args['custom'] = existing_custom

        return GeneratorConfig(**config_args)

    def save_config(self, config: GeneratorConfig, output_path: Union[str, Path]):
        """Save configuration to JSON file."""
        path = Path(output_path)

        config_dict = asdict(config)
        custom = config_dict.pop("custom")
        config_dict.update(custom)

        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration to {path}: {str(e)}") from e

    def validate_config(self, config: GeneratorConfig) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation warnings/errors
        """
        warnings = []

        if not isinstance(config.batch_size, int) or config.batch_size < 1:
            warnings.append(f"Invalid batch_size: {config.batch_size}")

        if not isinstance(config.dynamic_subobject_slots, int) or config.dynamic_subobject_slots < 0:
            warnings.append(f"Invalid dynamic_subobject_slots: {config.dynamic_subobject_slots}")

        if not config.package_prefix or not all(
            part.isidentifier() for part in config.package_prefix.split(".")
        ):
            warnings.append(f"Invalid package_prefix: {config.package_prefix}")

        if not config.schema_output_dir:
            warnings.append("schema_output_dir must not be empty")

        if not config.database_path:
            warnings.append("database_path must not be empty")

        if not config.skip_compile and not config.compiler_executable:
            warnings.append("compiler_executable must be set unless skip_compile is enabled")

        return warnings


# Global configuration manager instance
_config_manager = None

def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def load_config(custom_config: Optional[Dict[str, Any]] = None,
                config_file: Optional[Union[str, Path]] = None) -> GeneratorConfig:
    """
    Convenience function to load configuration.

    Args:
        custom_config: Custom configuration overrides
        config_file: Path to JSON configuration file

    Returns:
        Merged configuration
    """
    manager = get_config_manager()
    return manager.get_config(custom_config, config_file)


# Example configuration file for reference
EXAMPLE_CONFIG = {
    "schema_output_dir": "spatial/schema/unreal/generated",
    "database_path": "Content/Spatial/SchemaDatabase.json",
    "compiler_executable": "spatial/tools/schema_compiler",
    "compiler_schema_paths": ["spatial/schema", "spatial/build/dependencies/schema/standard_library"],
    "compiled_schema_dir": "spatial/build/assembly/schema",
    "batch_size": 100,
    "directories_to_never_cook": ["/Game/Developers"],
}

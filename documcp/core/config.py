"""Configuration loading for the DocuMCP server.

Settings come from `.documcp.yml` (found through ``DOCUMCP_CONFIG`` or the
working directory) and are overridden by ``DOCUMCP_*`` environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from ..constants import CONFIG_FILENAME, LLMProvider
from ..models import SimulationOptions

logger = logging.getLogger(__name__)


class LLMConfig(BaseModel):
    """Connection settings for an OpenAI-compatible LLM backend."""
    model_config = ConfigDict(extra='forbid')

    provider: LLMProvider = Field(default=LLMProvider.DEEPSEEK)
    api_key: Optional[str] = Field(default=None, repr=False)
    base_url: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = Field(default=4000, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    requests_per_minute: int = Field(default=10, ge=1)


class ServerConfig(BaseModel):
    """Top-level server configuration."""
    model_config = ConfigDict(extra='ignore')

    simulation: SimulationOptions = Field(default_factory=SimulationOptions)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    log_level: str = "INFO"


def load_config(project_path: Path) -> Optional[Dict[str, Any]]:
    """Load .documcp.yml configuration from a directory."""
    config_path = project_path / CONFIG_FILENAME
    if not config_path.exists():
        return None
    return _read_yaml(config_path)


def _read_yaml(config_path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", config_path)
        return None
    return data


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    llm: Dict[str, Any] = {}
    if environ.get("DOCUMCP_LLM_PROVIDER"):
        llm["provider"] = environ["DOCUMCP_LLM_PROVIDER"]
    api_key = environ.get("DOCUMCP_LLM_API_KEY") or environ.get("OPENAI_API_KEY")
    if api_key:
        llm["api_key"] = api_key
    if environ.get("DOCUMCP_LLM_BASE_URL"):
        llm["base_url"] = environ["DOCUMCP_LLM_BASE_URL"]
    if environ.get("DOCUMCP_LLM_MODEL"):
        llm["model"] = environ["DOCUMCP_LLM_MODEL"]

    overrides: Dict[str, Any] = {}
    if llm:
        overrides["llm"] = llm
    if environ.get("DOCUMCP_LOG_LEVEL"):
        overrides["log_level"] = environ["DOCUMCP_LOG_LEVEL"]
    return overrides


def load_server_config(
    config_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ServerConfig:
    """Build the server configuration from file and environment.

    Args:
        config_path: Explicit config file. Defaults to ``$DOCUMCP_CONFIG`` or
            ``.documcp.yml`` in the working directory.
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        ServerConfig with environment values taking precedence over the file
    """
    environ = dict(os.environ) if environ is None else environ

    if config_path is None and environ.get("DOCUMCP_CONFIG"):
        config_path = Path(environ["DOCUMCP_CONFIG"])

    if config_path is not None:
        data = _read_yaml(config_path) if config_path.exists() else None
        if data is None and not config_path.exists():
            logger.warning("Config file not found: %s", config_path)
    else:
        data = load_config(Path.cwd())

    data = dict(data or {})
    for key, value in _env_overrides(environ).items():
        if isinstance(value, dict):
            section = dict(data.get(key) or {})
            section.update(value)
            data[key] = section
        else:
            data[key] = value

    return ServerConfig.model_validate(data)

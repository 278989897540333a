"""Load LMC configuration"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Union

import toml

from .config_classes import (
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_WORKSPACE,
    EngineConfig,
    RunConfig,
    WorkspaceConfig,
)
from .exceptions import UserResolvableError

LOG = logging.getLogger(__name__)

WORKSPACE_ENV = "LMC_WORKSPACE"
ENGINE_ENV = "LMC_ENGINE"


class ConfigError(UserResolvableError):
    """Error loading configuration"""


@dataclass(frozen=True)
class Config:
    workspace: WorkspaceConfig
    engine: EngineConfig = field(default_factory=EngineConfig)
    run: RunConfig = field(default_factory=RunConfig)
    config_file: Union[Path, None] = None


def from_workspace(root, engine: str = None, **run_options) -> Config:
    """Build a configuration directly, without reading any files"""
    return Config(
        workspace=WorkspaceConfig(Path(root)),
        engine=EngineConfig(module=engine),
        run=RunConfig(**run_options),
    )


def load(args: dict) -> Config:
    """Load the configuration from defaults, lmc.toml, environment and ARGS

    Later sources win. The workspace directory itself is created lazily by the
    stores, not here.
    """
    workspace = Path(
        args.get("--workspace") or os.environ.get(WORKSPACE_ENV) or DEFAULT_WORKSPACE
    ).expanduser()

    if args.get("--config"):
        config_file = Path(args["--config"]).expanduser()
        if not config_file.exists():
            raise ConfigError(
                f"{config_file} not found",
                "Check the --config path, or leave it out to use the workspace defaults.",
            )
    else:
        config_file = workspace / DEFAULT_CONFIG_FILENAME
        if not config_file.exists():
            config_file = None

    data = _read_toml(config_file) if config_file else {}

    # the file may move the workspace, but the command line still wins
    ws_data = data.pop("workspace", {})
    if "root" in ws_data and not (args.get("--workspace") or os.environ.get(WORKSPACE_ENV)):
        root = Path(ws_data["root"]).expanduser()
        if not root.is_absolute():
            root = (config_file.parent / root).resolve()
        workspace = root

    try:
        engine_config = EngineConfig(**data.pop("engine", {}))
        run_config = RunConfig(**data.pop("run", {}))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration in {config_file}: {exc}", "")

    if data:
        LOG.warning("Ignoring unknown config sections: %s", ", ".join(data))

    module = args.get("--engine") or os.environ.get(ENGINE_ENV)
    if module:
        engine_config = replace(engine_config, module=module)

    cfg = Config(
        workspace=WorkspaceConfig(workspace),
        engine=engine_config,
        run=run_config,
        config_file=config_file,
    )
    LOG.info("Workspace: %s (config: %s)", cfg.workspace.root, config_file)
    return cfg


def _read_toml(config_file: Path) -> dict:
    try:
        return toml.load(config_file)
    except toml.TomlDecodeError as exc:
        raise ConfigError(f"{config_file} is not valid TOML", str(exc))
    except OSError as exc:
        raise ConfigError(f"Could not read {config_file}", str(exc))
